"""
Unpacks mod archives (.zip, .7z, .rar) into a directory.

The format is read from the archive's signature; the file suffix is only a
fallback.
"""

import logging
import zipfile
from pathlib import Path

import py7zr
import rarfile

log = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".zip", ".7z", ".rar"}

EXTRACTION_ERRORS = (
    OSError,
    zipfile.BadZipFile,
    py7zr.exceptions.ArchiveError,
    rarfile.Error,
)


def detect_format(archive: Path) -> str | None:
    """
    Returns '.zip', '.7z' or '.rar' for a readable archive, or None.

    Signatures win over the file suffix.
    """
    try:
        if py7zr.is_7zfile(archive):
            return ".7z"
        if rarfile.is_rarfile(archive):
            return ".rar"
        if zipfile.is_zipfile(archive):
            return ".zip"
    except OSError as e:
        log.debug(f"Could not read signature of '{archive.name}': {e}")
        return None
    ext = archive.suffix.lower()
    return ext if ext in SUPPORTED_EXTENSIONS else None


class ArchiveExtractor:
    """Pass/fail archive extraction backed by zipfile, py7zr and rarfile."""

    def extract(self, archive: Path, dest: Path) -> bool:
        """
        Extracts every member of `archive` into `dest`.

        Returns:
            True on success, False if the format is unsupported or the archive
            cannot be read.
        """
        ext = detect_format(archive)
        if ext is None:
            log.error(f"[red]Unrecognized archive format for {archive.name}[/red]")
            return False

        dest.mkdir(parents=True, exist_ok=True)
        try:
            if ext == ".zip":
                with zipfile.ZipFile(archive, "r") as zf:
                    zf.extractall(dest)
            elif ext == ".7z":
                with py7zr.SevenZipFile(archive, "r") as sz:
                    sz.extractall(dest)
            else:
                with rarfile.RarFile(archive, "r") as rf:
                    rf.extractall(dest)
        except EXTRACTION_ERRORS as e:
            log.debug(f"Extraction of '{archive.name}' failed: {e}")
            return False
        return True

    def extract_member(self, archive: Path, member: str, dest: Path) -> Path | None:
        """
        Extracts a single member (matched case-insensitively, at any depth) from
        `archive` into `dest`.

        Returns:
            The path of the extracted file, or None if it is not in the archive.
        """
        ext = detect_format(archive)
        wanted = member.lower()
        dest.mkdir(parents=True, exist_ok=True)
        try:
            if ext == ".zip":
                with zipfile.ZipFile(archive, "r") as zf:
                    names = zf.namelist()
                    if (name := _pick_member(names, wanted)) is None:
                        return None
                    zf.extract(name, dest)
            elif ext == ".7z":
                with py7zr.SevenZipFile(archive, "r") as sz:
                    names = sz.getnames()
                    if (name := _pick_member(names, wanted)) is None:
                        return None
                    sz.extract(dest, targets=[name])
            elif ext == ".rar":
                with rarfile.RarFile(archive, "r") as rf:
                    names = [info.filename for info in rf.infolist()]
                    if (name := _pick_member(names, wanted)) is None:
                        return None
                    rf.extract(name, dest)
            else:
                return None
        except EXTRACTION_ERRORS as e:
            log.debug(f"Could not extract '{member}' from '{archive.name}': {e}")
            return None

        extracted = dest / name
        return extracted if extracted.is_file() else None


def _pick_member(names: list[str], wanted: str) -> str | None:
    """Returns the shallowest archive member whose file name equals `wanted`."""
    matches = [
        name
        for name in names
        if name.replace("\\", "/").rsplit("/", 1)[-1].lower() == wanted
    ]
    if not matches:
        return None
    return min(matches, key=lambda n: n.replace("\\", "/").count("/"))
