"""
Filesystem helpers that turn an extracted archive into a clean mod folder.
"""

import logging
import os
import shutil
from pathlib import Path

from nexus_bridge.utils.path import find_child_ci

log = logging.getLogger(__name__)

JUNK_EXTENSIONS = {
    ".txt", ".md", ".pdf", ".doc", ".docx", ".rtf", ".url",
    ".ini", ".png", ".jpg", ".jpeg", ".bmp", ".gif",
}
JUNK_NAME_PARTS = (
    "readme", "license", "changelog", "credits", "authors", "install", "instructions",
)

# Top-level folders that belong inside the game's Data directory. An archive
# whose only folder is one of these is already at the right depth.
GAME_DATA_FOLDERS = {
    "meshes", "textures", "scripts", "sound", "interface", "strings", "seq",
    "grass", "video", "music", "shaders", "shadersfx", "lodsettings", "skse",
    "netscriptframework", "edit scripts", "dialogueviews", "facegen",
    "caliente tools", "actors", "fonts", "materials", "platform", "source",
    "terrain", "trees", "vis", "distantlod", "lod", "dyndolod", "nemesis_engine",
}


def is_junk_file(filename: str) -> bool:
    """True for documentation and screenshots that don't affect the game."""
    lower = filename.lower()
    if Path(lower).suffix in JUNK_EXTENSIONS:
        return True
    return any(part in lower for part in JUNK_NAME_PARTS)


def _split_entries(directory: Path) -> tuple[list[Path], list[Path]]:
    dirs, files = [], []
    for entry in sorted(directory.iterdir()):
        (dirs if entry.is_dir() else files).append(entry)
    return dirs, files


def fix_backslash_paths(root: Path) -> int:
    """
    Rebuilds entries whose names contain a literal backslash (archives packed on
    Windows and unpacked elsewhere) into proper nested paths.

    Returns:
        The number of entries moved.
    """
    moved = 0
    for entry in sorted(root.rglob("*"), key=lambda p: len(p.parts), reverse=True):
        if "\\" not in entry.name:
            continue
        target = entry.parent.joinpath(*[p for p in entry.name.split("\\") if p])
        target.parent.mkdir(parents=True, exist_ok=True)
        if entry.is_dir() and target.exists():
            merge_copy(entry, target)
            shutil.rmtree(entry)
        else:
            os.replace(entry, target)
        moved += 1
    if moved:
        log.debug(f"Fixed {moved} backslash paths under '{root.name}'.")
    return moved


def detect_wrapper_folder(root: Path) -> Path:
    """
    Descends through single wrapper directories until real content is reached.

    A directory is a wrapper when it is the only directory at its level and
    every sibling file is junk. A `Data` directory is always unwrapped, while a
    known game data folder such as `meshes` is never unwrapped.
    """
    current = root
    while True:
        dirs, files = _split_entries(current)
        if len(dirs) != 1 or any(not is_junk_file(f.name) for f in files):
            return current

        only = dirs[0]
        name = only.name.lower()
        if name != "data" and name in GAME_DATA_FOLDERS:
            return current
        current = only


def select_variant_folder(content: Path, package_name: str) -> Path:
    """
    Picks the variant directory named after the package when an archive ships
    several alternatives side by side (e.g. 'Mod - Option A', 'Mod - Option B').
    """
    dirs, files = _split_entries(content)
    significant = [f for f in files if not is_junk_file(f.name)]
    if len(dirs) <= 1 or significant:
        return content

    wanted = package_name.lower()
    for directory in dirs:
        if directory.name.lower() == wanted:
            log.debug(f"Selected variant folder '{directory.name}'.")
            return directory
    return content


def count_files(root: Path) -> int:
    """Counts regular files below `root`."""
    if not root.is_dir():
        return 0
    return sum(1 for p in root.rglob("*") if p.is_file())


def copy_entries(src: Path, dst: Path) -> None:
    """Copies the children of `src` into `dst`, overwriting existing files."""
    dst.mkdir(parents=True, exist_ok=True)
    for entry in src.iterdir():
        target = dst / entry.name
        if entry.is_dir():
            shutil.copytree(entry, target, dirs_exist_ok=True)
        else:
            shutil.copy2(entry, target)


def copy_tree_files(src: Path, dst: Path) -> int:
    """
    Copies every regular file below `src` to the same relative path below
    `dst`, one file at a time. A file that cannot be copied is logged and
    skipped so the remaining files still land.

    Returns:
        The number of files copied.
    """
    copied = 0
    for path in src.rglob("*"):
        if not path.is_file():
            continue
        target = dst / path.relative_to(src)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)
            copied += 1
        except OSError as e:
            log.debug(f"Could not copy '{path}': {e}")
    return copied


def merge_copy(src: Path, dst: Path) -> None:
    """
    Recursively copies `src` into `dst`, merging into existing directories that
    differ only by case (e.g. 'Textures' into 'textures').
    """
    dst.mkdir(parents=True, exist_ok=True)
    for entry in src.iterdir():
        if entry.is_dir():
            existing = find_child_ci(dst, entry.name, want_dir=True)
            merge_copy(entry, existing or dst / entry.name)
        else:
            shutil.copy2(entry, dst / entry.name)


def flatten_data_folder(mod_root: Path) -> bool:
    """
    Moves the contents of a top-level `Data` directory up into `mod_root`.

    Returns:
        True if a Data directory was flattened.
    """
    data_dir = find_child_ci(mod_root, "data", want_dir=True)
    if data_dir is None:
        return False

    log.debug(f"Flattening '{data_dir.name}' folder in '{mod_root.name}'.")
    for entry in list(data_dir.iterdir()):
        target = mod_root / entry.name
        try:
            if entry.is_dir() and target.is_dir():
                merge_copy(entry, target)
                shutil.rmtree(entry)
            else:
                os.replace(entry, target)
        except OSError as e:
            log.warning(f"[yellow]Failed to move '{entry.name}' out of Data: {e}[/yellow]")

    try:
        data_dir.rmdir()
    except OSError as e:
        log.debug(f"Data folder not removed: {e}")
    return True
