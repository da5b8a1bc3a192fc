from __future__ import annotations

from pathlib import Path

from nexus_bridge.archive.layout import (
    copy_tree_files,
    count_files,
    detect_wrapper_folder,
    fix_backslash_paths,
    flatten_data_folder,
    is_junk_file,
    merge_copy,
    select_variant_folder,
)


def _touch(root: Path, *paths: str) -> None:
    for rel in paths:
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"x")


def test_is_junk_file() -> None:
    assert is_junk_file("README.md")
    assert is_junk_file("screenshot.PNG")
    assert is_junk_file("License")
    assert not is_junk_file("plugin.esp")
    assert not is_junk_file("textures.bsa")


def test_wrapper_folder_is_unwrapped_recursively(tmp_path: Path) -> None:
    _touch(tmp_path, "readme.txt", "Wrapper/Inner/plugin.esp", "Wrapper/Inner/meshes/a.nif")
    assert detect_wrapper_folder(tmp_path) == tmp_path / "Wrapper" / "Inner"


def test_wrapper_with_real_sibling_file_is_kept(tmp_path: Path) -> None:
    _touch(tmp_path, "plugin.esp", "Wrapper/meshes/a.nif")
    assert detect_wrapper_folder(tmp_path) == tmp_path


def test_game_data_folder_is_not_unwrapped(tmp_path: Path) -> None:
    _touch(tmp_path, "meshes/armor/a.nif")
    assert detect_wrapper_folder(tmp_path) == tmp_path


def test_backslash_names_become_directories(tmp_path: Path) -> None:
    (tmp_path / "textures\\actors\\skin.dds").write_bytes(b"x")
    assert fix_backslash_paths(tmp_path) == 1
    assert (tmp_path / "textures" / "actors" / "skin.dds").is_file()


def test_select_variant_folder(tmp_path: Path) -> None:
    _touch(tmp_path, "My Mod/plugin.esp", "Other Option/plugin.esp", "readme.txt")
    assert select_variant_folder(tmp_path, "my mod") == tmp_path / "My Mod"
    assert select_variant_folder(tmp_path, "Unrelated") == tmp_path


def test_copy_tree_files_and_count(tmp_path: Path) -> None:
    src, dst = tmp_path / "src", tmp_path / "dst"
    _touch(src, "a.esp", "meshes/b.nif", "meshes/deep/c.nif")
    assert copy_tree_files(src, dst) == 3
    assert count_files(dst) == 3
    assert count_files(tmp_path / "missing") == 0


def test_merge_copy_ignores_case(tmp_path: Path) -> None:
    src, dst = tmp_path / "src", tmp_path / "dst"
    _touch(src, "Textures/new.dds")
    _touch(dst, "textures/old.dds")
    merge_copy(src, dst)
    assert sorted(p.name for p in (dst / "textures").iterdir()) == ["new.dds", "old.dds"]
    assert not (dst / "Textures").exists() or (dst / "Textures").samefile(dst / "textures")


def test_flatten_data_folder(tmp_path: Path) -> None:
    _touch(tmp_path, "Data/plugin.esp", "Data/meshes/a.nif", "meshes/b.nif")
    assert flatten_data_folder(tmp_path) is True
    assert (tmp_path / "plugin.esp").is_file()
    assert (tmp_path / "meshes" / "a.nif").is_file()
    assert (tmp_path / "meshes" / "b.nif").is_file()
    assert not (tmp_path / "Data").exists()
    assert flatten_data_folder(tmp_path) is False
