"""
Helper functions for formatting sizes, durations and package labels.
"""

SIZE_UNITS = ("KB", "MB", "GB", "TB")
DURATION_UNITS = ((3600, "h"), (60, "m"), (1, "s"))


def format_size(num_bytes: int) -> str:
    """Formats a byte count in binary units (e.g., '145.3 MB')."""
    if num_bytes < 1024:
        return f"{max(num_bytes, 0)} B"
    size = float(num_bytes)
    for unit in SIZE_UNITS:
        size /= 1024
        if size < 1024:
            return f"{size:.1f} {unit}"
    return f"{size:.1f} {SIZE_UNITS[-1]}"


def format_duration(seconds: float) -> str:
    """Formats a duration as '2h 34m 12s', dropping empty leading units."""
    remaining = int(seconds)
    parts = []
    for unit_seconds, suffix in DURATION_UNITS:
        amount, remaining = divmod(remaining, unit_seconds)
        if amount:
            parts.append(f"{amount}{suffix}")
    return " ".join(parts) or "0s"


def package_label(index: int, total: int, name: str) -> str:
    """Builds the '[3/120] Some Mod' prefix used in per-package log lines."""
    width = len(str(total))
    return f"[{index + 1:>{width}}/{total}] {name}"
