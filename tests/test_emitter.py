from __future__ import annotations

from pathlib import Path

from nexus_bridge.core.emitter import ProfileWriter


def test_writes_both_lists(tmp_path: Path) -> None:
    writer = ProfileWriter(tmp_path / "profiles" / "Default")
    writer.write_modlist(["Winner", "Loser"])
    writer.write_plugins(["Skyrim.esm", "Patch.esp"])

    assert writer.modlist_path.read_text(encoding="utf-8").splitlines() == [
        "# This file was automatically generated by NexusBridge",
        "# Mod priority: Top = Winner, Bottom = Loser",
        "+Winner",
        "+Loser",
    ]
    assert writer.plugins_path.read_text(encoding="utf-8").splitlines() == [
        "# This file was automatically generated by NexusBridge",
        "*Skyrim.esm",
        "*Patch.esp",
    ]


def test_overwrites_existing_files(tmp_path: Path) -> None:
    writer = ProfileWriter(tmp_path)
    writer.write_modlist(["Old A", "Old B", "Old C"])
    writer.write_modlist(["New"])
    lines = writer.modlist_path.read_text(encoding="utf-8").splitlines()
    assert lines[2:] == ["+New"]
