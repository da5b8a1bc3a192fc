"""
Thread-safe statistics for an install session.
"""

import threading
from dataclasses import dataclass, field


@dataclass
class PipelineStats:
    """
    Aggregate counters shared by the download and install pools.

    Workers never touch the fields directly; they go through `increment` so that
    every update happens under the same lock.
    """

    total_packages: int = 0
    downloaded: int = 0
    installed: int = 0
    skipped: int = 0
    unsupported: int = 0
    failed_downloads: int = 0
    failed_installs: int = 0
    install_warnings: int = 0
    integrity_warnings: int = 0
    download_attempts: int = 0
    bytes_downloaded: int = 0

    # Load order results
    rules_applied: int = 0
    rules_dropped: int = 0
    violations: int = 0
    cycle_detected: bool = False

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def increment(self, name: str, amount: int = 1) -> None:
        """Atomically adds `amount` to the counter called `name`."""
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    @property
    def failed(self) -> int:
        with self._lock:
            return self.failed_downloads + self.failed_installs

    def snapshot(self) -> dict[str, int | bool]:
        """Returns a consistent copy of all public counters."""
        with self._lock:
            return {
                name: value
                for name, value in vars(self).items()
                if not name.startswith("_")
            }
