"""
Utilities for handling file paths, folder names, and URL parsing.
"""

import re
from pathlib import Path
from typing import Optional, Tuple

from pathvalidate import sanitize_filename

COLLECTION_URL_PATTERN = re.compile(
    r"nexusmods\.com/(?:games/)?([^/]+)/collections/([^/?#]+)"
)


def parse_collection_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Parses a Nexus Mods collection URL into its game domain and collection slug.
    Handles both the `/games/<game>/collections/<slug>` and the short form.
    """
    match = COLLECTION_URL_PATTERN.search(url)
    if match:
        return match.group(1), match.group(2)
    return None


def sanitize_name(name: str) -> str:
    """
    Makes a string safe to use as a single folder or file name on any platform.
    Reserved characters become underscores; trailing dots and spaces are trimmed.
    """
    cleaned = sanitize_filename(name, replacement_text="_", platform="universal")
    return cleaned.rstrip(" .")


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def find_child_ci(directory: Path, name: str, want_dir: bool | None = None) -> Path | None:
    """
    Finds an entry of `directory` whose name matches `name` case-insensitively.

    Args:
        directory: The directory to search.
        name: The entry name to look for.
        want_dir: True to only match directories, False to only match files.
    """
    if not directory.is_dir():
        return None
    exact = directory / name
    if exact.exists() and (want_dir is None or exact.is_dir() == want_dir):
        return exact
    lowered = name.lower()
    for entry in directory.iterdir():
        if entry.name.lower() != lowered:
            continue
        if want_dir is None or entry.is_dir() == want_dir:
            return entry
    return None


def resolve_ci(base: Path, relative: str) -> Path | None:
    """Resolves a slash-separated relative path segment by segment, ignoring case."""
    current = base
    for segment in (s for s in relative.replace("\\", "/").split("/") if s):
        found = find_child_ci(current, segment)
        if found is None:
            return None
        current = found
    return current
