from __future__ import annotations

import math
import struct
from pathlib import Path

import pytest
from conftest import make_package

from nexus_bridge.core.plugin_order import (
    FLAG_LIGHT,
    FLAG_MASTER,
    MasterFirstSorter,
    read_header_flags,
    resolve_plugin_order,
)
from nexus_bridge.core.positions import PluginPositionResolver
from nexus_bridge.models.collection import PluginEntry


def _plugin(path: Path, flags: int | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"" if flags is None else struct.pack("<4sII", b"TES4", 0, flags))
    return path


class ExplodingSorter:
    def sort(self, data_dirs, names):
        raise RuntimeError("sorter crashed")


def test_header_flags(tmp_path: Path) -> None:
    assert read_header_flags(_plugin(tmp_path / "a.esp", FLAG_MASTER)) == FLAG_MASTER
    assert read_header_flags(_plugin(tmp_path / "empty.esp")) is None
    (tmp_path / "bad.esp").write_bytes(b"XXXX" + b"\0" * 8)
    assert read_header_flags(tmp_path / "bad.esp") is None


def test_master_first_sorter_uses_flags_and_extensions(tmp_path: Path) -> None:
    _plugin(tmp_path / "Flagged.esp", FLAG_MASTER)
    _plugin(tmp_path / "Light.esp", FLAG_LIGHT)
    _plugin(tmp_path / "Regular.esp", 0)
    names = ["Regular.esp", "Small.esl", "Light.esp", "Missing.esm", "Flagged.esp", "Other.esp"]

    ordered = MasterFirstSorter().sort([tmp_path], names)
    assert ordered == ["Missing.esm", "Flagged.esp", "Small.esl", "Light.esp", "Regular.esp", "Other.esp"]


def test_resolve_sorts_present_enabled_plugins(instance, collection_factory) -> None:
    _plugin(instance.mods / "Mod A" / "patch.esp", 0)
    _plugin(instance.mods / "Mod B" / "Base.esm", FLAG_MASTER)
    game = instance.root / "Stock Game"
    _plugin(game / "Data" / "Skyrim.esm", FLAG_MASTER)
    collection = collection_factory(
        [],
        plugins=[
            PluginEntry(name="Patch.esp"),
            PluginEntry(name="Skyrim.esm"),
            PluginEntry(name="patch.esp"),
            PluginEntry(name="Base.esm"),
            PluginEntry(name="Disabled.esp", enabled=False),
            PluginEntry(name="NotInstalled.esp"),
        ],
    )

    order = resolve_plugin_order(collection, instance.mods, game)
    assert order == ["Skyrim.esm", "Base.esm", "Patch.esp"]


@pytest.mark.parametrize("use_game_path", [False, True])
def test_resolve_falls_back_to_collection_order(instance, collection_factory, use_game_path) -> None:
    game = instance.root / "Stock Game"
    game.mkdir()
    collection = collection_factory(
        [],
        plugins=[
            PluginEntry(name="B.esp"),
            PluginEntry(name="Off.esp", enabled=False),
            PluginEntry(name="A.esm"),
        ],
    )
    order = resolve_plugin_order(
        collection,
        instance.mods,
        game if use_game_path else None,
        ExplodingSorter(),
    )
    assert order == ["B.esp", "A.esm"]


def test_positions_use_earliest_plugin(tmp_path: Path) -> None:
    _plugin(tmp_path / "A" / "late.esp")
    _plugin(tmp_path / "A" / "Early.ESP")
    _plugin(tmp_path / "B" / "nested" / "deep.esm")
    _plugin(tmp_path / "C" / "readme.txt")
    _plugin(tmp_path / "C" / "unsorted.esp")
    packages = [
        make_package(0, "A", folder="A"),
        make_package(1, "B", folder="B"),
        make_package(2, "C", folder="C"),
        make_package(3, "Gone", folder="Gone"),
    ]

    positions = PluginPositionResolver(workers=2).resolve(
        packages, tmp_path, ["deep.esm", "early.esp", "Late.esp"]
    )
    assert positions[:2] == [1, 0]
    assert math.isinf(positions[2]) and math.isinf(positions[3])


def test_positions_for_no_packages(tmp_path: Path) -> None:
    assert PluginPositionResolver().resolve([], tmp_path, ["a.esp"]) == []
