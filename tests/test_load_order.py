from __future__ import annotations

import struct

from conftest import make_package, rule

from nexus_bridge.core.load_order import build_load_order
from nexus_bridge.models.collection import PluginEntry
from nexus_bridge.models.config import BridgeConfig
from nexus_bridge.models.stats import PipelineStats


def _write_plugin(path, flags=0) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(struct.pack("<4sII", b"TES4", 0, flags))


def _setup(instance, collection_factory, rules):
    _write_plugin(instance.mods / "A" / "A.esp")
    _write_plugin(instance.mods / "B" / "B.esp")
    _write_plugin(instance.root / "Stock Game" / "Data" / "Skyrim.esm", 1)
    packages = [
        make_package(0, "A", logical="A", folder="A"),
        make_package(1, "B", logical="B", folder="B"),
    ]
    plugins = [PluginEntry(name="B.esp"), PluginEntry(name="A.esp"), PluginEntry(name="Skyrim.esm")]
    return collection_factory(packages, rules, plugins)


def test_plugin_positions_decide_without_rules(instance, collection_factory) -> None:
    collection = _setup(instance, collection_factory, [])
    stats = PipelineStats()

    result = build_load_order(collection, instance, BridgeConfig(max_workers=2), stats)

    assert result.plugin_order == ["Skyrim.esm", "B.esp", "A.esp"]
    assert result.mod_order == ["A", "B"]
    assert stats.rules_applied == 0 and stats.violations == 0

    modlist = (instance.profile_dir / "modlist.txt").read_text(encoding="utf-8").splitlines()
    plugins = (instance.profile_dir / "plugins.txt").read_text(encoding="utf-8").splitlines()
    assert modlist[2:] == ["+A", "+B"]
    assert plugins[1:] == ["*Skyrim.esm", "*B.esp", "*A.esp"]


def test_rules_override_plugin_positions(instance, collection_factory) -> None:
    collection = _setup(instance, collection_factory, [rule("before", "A", "B")])
    stats = PipelineStats()

    result = build_load_order(collection, instance, BridgeConfig(), stats)

    assert result.mod_order == ["B", "A"]
    assert stats.rules_applied == 1
    assert not stats.cycle_detected


def test_cycles_are_reported(instance, collection_factory) -> None:
    rules = [rule("before", "A", "B"), rule("after", "A", "B")]
    collection = _setup(instance, collection_factory, rules)
    stats = PipelineStats()

    result = build_load_order(collection, instance, BridgeConfig(), stats, write=False)

    assert sorted(result.mod_order) == ["A", "B"]
    assert stats.violations == 1
    assert stats.cycle_detected
    assert not (instance.profile_dir / "modlist.txt").exists()
