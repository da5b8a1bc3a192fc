"""
Manages the SQLite database that remembers which folder each mod was installed to.
"""

import logging
import sqlite3
import threading
from pathlib import Path

from nexus_bridge.models.collection import Package
from nexus_bridge.utils.path import sanitize_name

log = logging.getLogger(__name__)


def default_folder_name(package: Package) -> str:
    """
    Derives the folder name for a package that has never been installed.

    Catalog downloads use '<logical name>-<mod id>-<file id>', matching the
    layout Mod Organizer produces. Direct downloads use the package name.
    """
    source = package.source
    if source.has_catalog_ids and not source.is_direct:
        base = sanitize_name(source.logical_filename or package.name)
        return f"{base}-{source.mod_id}-{source.file_id}"
    return sanitize_name(package.name) or f"package-{package.index}"


class FolderRegistry:
    """
    A thread-safe SQLite registry mapping a package identity to its folder name,
    so that reinstalling a collection reuses existing mod folders.
    """

    def __init__(self, instance_dir: Path):
        self.db_path = instance_dir / "nexus_bridge.sqlite"
        self._lock = threading.Lock()
        self._initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Gets a new database connection with optimized PRAGMA settings."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            return conn
        except sqlite3.Error as e:
            log.error(f"Failed to connect to folder registry: {e}")
            raise

    def _initialize_db(self) -> None:
        """Creates the database and table if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS package_folders (
                    package_key TEXT PRIMARY KEY NOT NULL,
                    folder_name TEXT NOT NULL UNIQUE,
                    package_name TEXT,
                    mod_id INTEGER,
                    file_id INTEGER,
                    recorded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
                """
            )
            conn.commit()

    def lookup(self, package_key: str) -> str | None:
        """Returns the folder previously recorded for a package key."""
        with self._lock, self._get_connection() as conn:
            row = conn.execute(
                "SELECT folder_name FROM package_folders WHERE package_key = ?",
                (package_key,),
            ).fetchone()
        return row[0] if row else None

    def folders_in_use(self) -> dict[str, str]:
        """Maps every recorded folder name (lowercased) to its package key."""
        with self._lock, self._get_connection() as conn:
            rows = conn.execute(
                "SELECT folder_name, package_key FROM package_folders"
            ).fetchall()
        return {folder.lower(): key for folder, key in rows}

    def record_many(self, packages: list[Package]) -> None:
        """Stores the folder assignment of every package that has one."""
        records = [
            (
                p.identity_key,
                p.folder_name,
                p.name,
                p.source.mod_id,
                p.source.file_id,
            )
            for p in packages
            if p.folder_name
        ]
        if not records:
            return
        try:
            with self._lock, self._get_connection() as conn:
                conn.executemany(
                    "INSERT OR REPLACE INTO package_folders "
                    "(package_key, folder_name, package_name, mod_id, file_id) "
                    "VALUES (?, ?, ?, ?, ?)",
                    records,
                )
                conn.commit()
        except sqlite3.Error as e:
            log.error(f"Failed to record folder assignments: {e}")

    def assign_folders(self, packages: list[Package]) -> None:
        """
        Assigns a unique folder name to every package, once, reusing earlier
        assignments. Must run before any task for these packages is queued.
        """
        taken = self.folders_in_use()
        # folders handed out during this call, never given to a second package
        assigned = {p.folder_name.lower() for p in packages if p.folder_name}
        for package in packages:
            if package.folder_name is not None:
                continue
            key = package.identity_key
            folder = self.lookup(key)
            if (
                folder is None
                or folder.lower() in assigned
                or taken.get(folder.lower(), key) != key
            ):
                folder = self._unique(default_folder_name(package), key, taken, assigned)
            taken[folder.lower()] = key
            assigned.add(folder.lower())
            package.assign_folder(folder)
        self.record_many(packages)

    @staticmethod
    def _unique(base: str, key: str, taken: dict[str, str], assigned: set[str]) -> str:
        candidate = base
        suffix = 2
        while candidate.lower() in assigned or taken.get(candidate.lower(), key) != key:
            candidate = f"{base} ({suffix})"
            suffix += 1
        return candidate
