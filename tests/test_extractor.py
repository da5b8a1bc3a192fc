from __future__ import annotations

import zipfile
from pathlib import Path

import py7zr
from conftest import make_package

from nexus_bridge.archive.extractor import ArchiveExtractor, detect_format
from nexus_bridge.core.planner import archive_name_for


def _zip(path: Path, members: dict[str, bytes]) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return path


def _seven_zip(path: Path, tmp_path: Path, name: str, data: bytes) -> Path:
    source = tmp_path / "payload"
    source.write_bytes(data)
    with py7zr.SevenZipFile(path, "w") as sz:
        sz.write(source, arcname=name)
    return path


def test_zip_saved_under_catalog_name_extracts(tmp_path: Path) -> None:
    package = make_package(0, "SkyUI", mod_id=12604, file_id=35407)
    archive = _zip(tmp_path / archive_name_for(package), {"interface/skyui.swf": b"swf"})
    assert archive.suffix == ".7z"

    dest = tmp_path / "out"
    assert ArchiveExtractor().extract(archive, dest)
    assert (dest / "interface" / "skyui.swf").read_bytes() == b"swf"


def test_seven_zip_with_zip_suffix_extracts(tmp_path: Path) -> None:
    archive = _seven_zip(tmp_path / "mislabelled.zip", tmp_path, "meshes/a.nif", b"nif")
    assert detect_format(archive) == ".7z"

    dest = tmp_path / "out"
    assert ArchiveExtractor().extract(archive, dest)
    assert (dest / "meshes" / "a.nif").read_bytes() == b"nif"


def test_extract_member_reads_signature(tmp_path: Path) -> None:
    archive = _zip(
        tmp_path / "collection.7z",
        {"nested/collection.json": b"{}", "collection.json": b'{"info": {}}', "other.txt": b""},
    )
    found = ArchiveExtractor().extract_member(archive, "Collection.json", tmp_path / "out")
    assert found == tmp_path / "out" / "collection.json"
    assert found.read_bytes() == b'{"info": {}}'
    assert ArchiveExtractor().extract_member(archive, "missing.json", tmp_path / "out") is None


def test_unreadable_archives_fail(tmp_path: Path) -> None:
    garbage = tmp_path / "broken.zip"
    garbage.write_bytes(b"not an archive")
    unknown = tmp_path / "notes.bin"
    unknown.write_bytes(b"not an archive")

    extractor = ArchiveExtractor()
    assert not extractor.extract(garbage, tmp_path / "a")
    assert not extractor.extract(unknown, tmp_path / "b")
    assert not extractor.extract(tmp_path / "absent.7z", tmp_path / "c")
    assert detect_format(unknown) is None
