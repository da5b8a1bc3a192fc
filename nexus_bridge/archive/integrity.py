"""
Provides methods for checking the integrity of downloaded archives.
"""

import hashlib
import logging
from pathlib import Path

log = logging.getLogger(__name__)


class ArchiveIntegrityChecker:
    """A collection of static methods for validating downloaded archives."""

    @staticmethod
    def check_size(filepath: Path, expected_size: int) -> bool:
        """
        Compares the size on disk with the size announced by the manifest.

        A mismatch is only reported; the archive is kept because manifests are
        occasionally out of date while the file itself is fine.

        Args:
            filepath: Path to the archive.
            expected_size: Size in bytes from the manifest. 0 skips the check.

        Returns:
            True if the sizes match or no size is known, False otherwise.
        """
        if expected_size <= 0:
            return True
        try:
            actual = filepath.stat().st_size
        except OSError as e:
            log.warning(f"Size check failed for '{filepath.name}': {e}")
            return False
        if actual != expected_size:
            log.warning(
                f"[yellow]Size mismatch for '{filepath.name}': expected "
                f"{expected_size} bytes, got {actual}.[/yellow]"
            )
            return False
        return True

    @staticmethod
    def md5sum(filepath: Path, chunk_size: int = 1048576) -> str:
        """Computes the MD5 hex digest of a file by streaming it."""
        digest = hashlib.md5()  # noqa: S324
        with open(filepath, "rb") as f:
            while chunk := f.read(chunk_size):
                digest.update(chunk)
        return digest.hexdigest()

    @staticmethod
    def check_md5(filepath: Path, expected_md5: str) -> bool:
        """
        Verifies an archive against the MD5 from the manifest.

        Returns:
            True if the hash matches or none is known, False otherwise.
        """
        if not expected_md5:
            return True
        try:
            actual = ArchiveIntegrityChecker.md5sum(filepath)
        except OSError as e:
            log.warning(f"MD5 check failed for '{filepath.name}': {e}")
            return False
        if actual.lower() != expected_md5.lower():
            log.warning(
                f"[yellow]MD5 mismatch for '{filepath.name}': expected "
                f"{expected_md5}, got {actual}.[/yellow]"
            )
            return False
        return True
