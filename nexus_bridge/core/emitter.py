"""
Writes the two profile files Mod Organizer reads: modlist.txt and plugins.txt.
"""

import logging
from pathlib import Path

from nexus_bridge.utils.path import create_dir

log = logging.getLogger(__name__)

GENERATED_HEADER = "# This file was automatically generated by NexusBridge"
PRIORITY_HEADER = "# Mod priority: Top = Winner, Bottom = Loser"
MOD_MARKER = "+"
PLUGIN_MARKER = "*"


class ProfileWriter:
    """Overwrites the profile's list files. Both lists are top = highest priority."""

    def __init__(self, profile_dir: Path):
        self.profile_dir = profile_dir

    @property
    def modlist_path(self) -> Path:
        return self.profile_dir / "modlist.txt"

    @property
    def plugins_path(self) -> Path:
        return self.profile_dir / "plugins.txt"

    def _write(self, path: Path, header: list[str], marker: str, entries: list[str]) -> None:
        create_dir(path.parent)
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            for line in header:
                f.write(f"{line}\n")
            for entry in entries:
                f.write(f"{marker}{entry}\n")

    def write_modlist(self, folders: list[str]) -> Path:
        self._write(self.modlist_path, [GENERATED_HEADER, PRIORITY_HEADER], MOD_MARKER, folders)
        log.info(f"Generated [cyan]modlist.txt[/cyan] with {len(folders)} mods")
        return self.modlist_path

    def write_plugins(self, plugins: list[str]) -> Path:
        self._write(self.plugins_path, [GENERATED_HEADER], PLUGIN_MARKER, plugins)
        log.info(f"Generated [cyan]plugins.txt[/cyan] with {len(plugins)} plugins")
        return self.plugins_path
