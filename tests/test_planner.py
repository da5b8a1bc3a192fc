from __future__ import annotations

from pathlib import Path

from conftest import make_package

from nexus_bridge.core.planner import (
    InstancePaths,
    InstallPlanner,
    PackageState,
    archive_name_for,
    archive_name_from_url,
)
from nexus_bridge.storage.folder_registry import FolderRegistry


def _planner(paths: InstancePaths) -> InstallPlanner:
    return InstallPlanner(paths, FolderRegistry(paths.root))


def _touch(path: Path, size: int = 1) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    return path


def test_packages_are_classified(instance, collection_factory) -> None:
    installed = make_package(0, "Installed", md5="a1", url="https://example.com/installed.zip")
    unsupported = make_package(1, "Broken")
    ready = make_package(2, "Ready", url="https://example.com/files/Ready%20Mod.zip")
    fresh = make_package(3, "Fresh", logical="Fresh", mod_id=10, file_id=20)

    _touch(instance.mods / "Installed" / "file.txt")
    _touch(instance.downloads / "Ready Mod.zip")

    plan = _planner(instance).plan(collection_factory([installed, unsupported, ready, fresh]))
    states = {e.package.name: e.state for e in plan.entries}
    assert states == {
        "Installed": PackageState.INSTALLED,
        "Broken": PackageState.UNSUPPORTED,
        "Ready": PackageState.READY,
        "Fresh": PackageState.DOWNLOAD,
    }
    ready_entry = plan.with_state(PackageState.READY)[0]
    assert ready_entry.archive_path == instance.downloads / "Ready Mod.zip"
    assert plan.entries[3].destination == "Fresh-10-20"


def test_empty_folder_is_not_installed(instance, collection_factory) -> None:
    package = make_package(0, "Empty", url="https://example.com/empty.zip")
    (instance.mods / "Empty").mkdir()
    plan = _planner(instance).plan(collection_factory([package]))
    assert plan.entries[0].state == PackageState.DOWNLOAD


def test_catalog_archive_matching_prefers_logical_prefix(instance, collection_factory) -> None:
    _touch(instance.downloads / "Other Name-55-1-0.7z", size=100)
    _touch(instance.downloads / "Weather-55-2-0.7z", size=3)
    _touch(instance.downloads / "Weather-55-2-0.7z.meta")
    package = make_package(0, "Weather Mod", logical="Weather", mod_id=55, file_id=2, size=100)

    plan = _planner(instance).plan(collection_factory([package]))
    assert plan.entries[0].archive_path.name == "Weather-55-2-0.7z"


def test_catalog_archive_matching_by_size_then_first(instance, collection_factory) -> None:
    _touch(instance.downloads / "aaa-55-1-0.7z", size=3)
    _touch(instance.downloads / "bbb-55-1-0.7z", size=100)
    sized = make_package(0, "Sized", logical="Sized", mod_id=55, file_id=2, size=100)
    unsized = make_package(1, "Unsized", logical="Unsized", mod_id=55, file_id=3)

    plan = _planner(instance).plan(collection_factory([sized, unsized]))
    assert plan.entries[0].archive_path.name == "bbb-55-1-0.7z"
    assert plan.entries[1].archive_path.name == "aaa-55-1-0.7z"


def test_archive_names() -> None:
    assert archive_name_from_url("https://example.com/dl/My%20Mod.7z?token=1") == "My Mod.7z"
    assert archive_name_from_url("https://example.com/") == "download.bin"
    catalog = make_package(0, "Mod", mod_id=1, file_id=2)
    assert archive_name_for(catalog) == "Mod-1-2.7z"


def test_find_game_path_prefers_stock_game(tmp_path: Path) -> None:
    paths = InstancePaths(tmp_path)
    (tmp_path / "Stock Game").mkdir()
    (tmp_path / "ModOrganizer.ini").write_text("[General]\ngamePath=elsewhere\n")
    assert paths.find_game_path() == tmp_path / "Stock Game"


def test_find_game_path_from_ini(tmp_path: Path) -> None:
    game = tmp_path / "games" / "Skyrim"
    game.mkdir(parents=True)
    escaped = str(game).replace("/", "\\\\")
    (tmp_path / "ModOrganizer.ini").write_text(
        f"[General]\ngamePath=@ByteArray({escaped})\n", encoding="utf-8"
    )
    assert InstancePaths(tmp_path).find_game_path() == game


def test_find_game_path_missing(tmp_path: Path) -> None:
    (tmp_path / "ModOrganizer.ini").write_text("[General]\ngamePath=nowhere\n")
    assert InstancePaths(tmp_path).find_game_path() is None


def test_creation_club_marker_is_dropped_anywhere(instance, collection_factory) -> None:
    _touch(instance.downloads / "Alpha-7-1-0.7z")
    _touch(instance.downloads / "Skyrim Survival-7-1-0.7z")
    package = make_package(0, "Survival", logical="Skyrim Creation Club - Survival", mod_id=7, file_id=1)

    plan = _planner(instance).plan(collection_factory([package]))
    assert plan.entries[0].archive_path.name == "Skyrim Survival-7-1-0.7z"
