"""
Produces the sorted plugin order written to plugins.txt.

The actual ordering is delegated to a `ComponentSorter`. The default sorter
only knows the engine's basic load classes; anything smarter can be plugged in
through the same interface.
"""

import logging
import struct
from pathlib import Path
from typing import Protocol

from rich.markup import escape

from nexus_bridge.models.collection import Collection
from nexus_bridge.utils.path import find_child_ci

log = logging.getLogger(__name__)

PLUGIN_EXTENSIONS = {".esp", ".esm", ".esl"}

HEADER_FORMAT = "<4sII"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
RECORD_TYPE = b"TES4"
FLAG_MASTER = 0x1
FLAG_LIGHT = 0x200


class ComponentSorter(Protocol):
    """Orders plugin names given the directories they can be found in."""

    def sort(self, data_dirs: list[Path], names: list[str]) -> list[str]: ...


def locate_plugin(name: str, data_dirs: list[Path]) -> Path | None:
    """Returns the first file called `name` directly inside one of `data_dirs`."""
    for directory in data_dirs:
        found = find_child_ci(directory, name, want_dir=False)
        if found is not None:
            return found
    return None


def read_header_flags(plugin: Path) -> int | None:
    """Reads the record flags of a plugin's TES4 header, or None if unreadable."""
    try:
        with open(plugin, "rb") as f:
            raw = f.read(HEADER_SIZE)
        record, _, flags = struct.unpack(HEADER_FORMAT, raw)
    except (OSError, struct.error):
        return None
    if record != RECORD_TYPE:
        return None
    return flags


class MasterFirstSorter:
    """
    Sorts masters first, then light plugins, then regular plugins.
    Within each class the incoming order is kept.
    """

    def _load_class(self, name: str, path: Path | None) -> int:
        suffix = Path(name).suffix.lower()
        flags = read_header_flags(path) if path else None
        if flags is None:
            is_master = suffix == ".esm"
            is_light = suffix == ".esl"
        else:
            is_master = bool(flags & FLAG_MASTER)
            is_light = bool(flags & FLAG_LIGHT) or suffix == ".esl"
        if is_master and not is_light:
            return 0
        if is_light:
            return 1
        return 2

    def sort(self, data_dirs: list[Path], names: list[str]) -> list[str]:
        classes = {name: self._load_class(name, locate_plugin(name, data_dirs)) for name in names}
        return sorted(names, key=lambda name: classes[name])


def _enabled_plugins(collection: Collection) -> list[str]:
    seen: set[str] = set()
    names = []
    for plugin in collection.plugins:
        if not plugin.enabled or plugin.name.lower() in seen:
            continue
        seen.add(plugin.name.lower())
        names.append(plugin.name)
    return names


def resolve_plugin_order(
    collection: Collection,
    mods_dir: Path,
    game_path: Path | None,
    sorter: ComponentSorter | None = None,
) -> list[str]:
    """
    Sorts the collection's enabled plugins that exist on disk.

    Plugins are looked up at the root of each mod folder, first match winning,
    and then in the game's Data folder. If no game path is known or the sorter
    fails, the enabled plugins are returned in collection order.
    """
    fallback = [p.name for p in collection.plugins if p.enabled]
    if game_path is None or not game_path.is_dir():
        log.warning("[yellow]Could not find game path, using collection plugin order.[/yellow]")
        return fallback

    sorter = sorter or MasterFirstSorter()
    data_dirs = sorted(p for p in mods_dir.iterdir() if p.is_dir()) if mods_dir.is_dir() else []
    game_data = find_child_ci(game_path, "Data", want_dir=True)
    if game_data is not None:
        data_dirs.append(game_data)

    names = _enabled_plugins(collection)
    present = [name for name in names if locate_plugin(name, data_dirs) is not None]
    log.info(
        f"Sorting [cyan]{len(present)}[/cyan] plugins "
        f"([dim]{len(names)} unique, {len(collection.plugins)} listed[/dim])"
    )

    try:
        ordered = sorter.sort(data_dirs, present)
    except Exception as e:
        log.warning(f"[yellow]Plugin sorting failed: {escape(str(e))}[/yellow]")
        log.warning("[yellow]Falling back to collection plugin order.[/yellow]")
        return fallback
    return ordered
