"""
Decides what has to happen to every package before any worker starts.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from urllib.parse import unquote, urlparse

from nexus_bridge.models.collection import Collection, Package
from nexus_bridge.storage.folder_registry import FolderRegistry
from nexus_bridge.utils.path import create_dir, find_child_ci, sanitize_name

log = logging.getLogger(__name__)

CREATION_CLUB_PREFIX = "creation club - "


@dataclass(frozen=True)
class InstancePaths:
    """The directories of a Mod Organizer 2 instance used by an install."""

    root: Path
    profile: str = "Default"

    @property
    def mods(self) -> Path:
        return self.root / "mods"

    @property
    def downloads(self) -> Path:
        return self.root / "downloads"

    @property
    def profile_dir(self) -> Path:
        return self.root / "profiles" / self.profile

    @property
    def scratch(self) -> Path:
        return self.root / "temp_extract"

    def ensure(self) -> None:
        for directory in (self.mods, self.downloads, self.profile_dir, self.scratch):
            create_dir(directory)

    def find_game_path(self) -> Path | None:
        """
        Locates the game installation used by this instance: a 'Stock Game'
        folder next to the mods, or the `gamePath` entry of ModOrganizer.ini.
        """
        stock = self.root / "Stock Game"
        if stock.is_dir():
            return stock

        ini = self.root / "ModOrganizer.ini"
        if ini.is_file():
            for line in ini.read_text(encoding="utf-8", errors="replace").splitlines():
                key, sep, value = line.partition("=")
                if not sep or key.strip() != "gamePath":
                    continue
                value = value.strip()
                if value.startswith("@ByteArray(") and value.endswith(")"):
                    value = value[len("@ByteArray(") : -1]
                value = value.replace("\\\\", "/").replace("\\", "/")
                candidate = Path(value)
                if not candidate.is_absolute():
                    candidate = self.root / candidate
                if candidate.is_dir():
                    return candidate
        return None


class PackageState(str, Enum):
    INSTALLED = "installed"
    UNSUPPORTED = "unsupported"
    READY = "ready"
    DOWNLOAD = "download"


@dataclass
class PlannedPackage:
    package: Package
    state: PackageState
    archive_path: Path | None = None

    @property
    def destination(self) -> str:
        return self.package.folder_name or ""


@dataclass
class InstallPlan:
    collection: Collection
    paths: InstancePaths
    entries: list[PlannedPackage] = field(default_factory=list)

    def with_state(self, state: PackageState) -> list[PlannedPackage]:
        return [e for e in self.entries if e.state == state]


def archive_name_from_url(url: str) -> str:
    """Extracts a safe archive file name from a direct download URL."""
    name = unquote(Path(urlparse(url).path).name)
    return sanitize_name(name) or "download.bin"


def archive_name_for(package: Package) -> str:
    """The file name a freshly downloaded archive is stored under."""
    source = package.source
    if source.is_direct:
        return archive_name_from_url(source.url)
    return sanitize_name(f"{package.name}-{source.mod_id}-{source.file_id}.7z")


class InstallPlanner:
    """
    Assigns folder names and sorts packages into 'already installed', 'not
    supported', 'archive already downloaded' and 'needs download'.
    """

    def __init__(self, paths: InstancePaths, registry: FolderRegistry):
        self.paths = paths
        self.registry = registry

    def plan(self, collection: Collection) -> InstallPlan:
        self.registry.assign_folders(collection.packages)

        downloads = self._list_downloads()
        plan = InstallPlan(collection, self.paths)
        for package in collection.packages:
            plan.entries.append(self._plan_package(package, downloads))

        counts = {state: len(plan.with_state(state)) for state in PackageState}
        log.info(
            f"Plan: [green]{counts[PackageState.DOWNLOAD]}[/green] to download, "
            f"[cyan]{counts[PackageState.READY]}[/cyan] archives on disk, "
            f"[yellow]{counts[PackageState.INSTALLED]}[/yellow] already installed, "
            f"[dim]{counts[PackageState.UNSUPPORTED]} unsupported[/dim]."
        )
        return plan

    def _plan_package(self, package: Package, downloads: list[os.DirEntry]) -> PlannedPackage:
        destination = self.paths.mods / package.folder_name
        if destination.is_dir() and any(destination.iterdir()):
            return PlannedPackage(package, PackageState.INSTALLED)

        if not package.is_downloadable:
            log.warning(
                f"[yellow]Skipping '{package.name}': no download URL or valid mod IDs.[/yellow]"
            )
            return PlannedPackage(package, PackageState.UNSUPPORTED)

        archive = self.find_existing_archive(package, downloads)
        if archive is not None:
            log.debug(f"Found existing archive for '{package.name}': {archive.name}")
            return PlannedPackage(package, PackageState.READY, archive)
        return PlannedPackage(package, PackageState.DOWNLOAD)

    def _list_downloads(self) -> list[os.DirEntry]:
        if not self.paths.downloads.is_dir():
            return []
        with os.scandir(self.paths.downloads) as it:
            return sorted((e for e in it if e.is_file()), key=lambda e: e.name)

    def find_existing_archive(
        self, package: Package, downloads: list[os.DirEntry]
    ) -> Path | None:
        """
        Looks for an archive of this package in the downloads folder.

        Direct downloads match on the file name from their URL. Catalog
        downloads match '<logical>-<modId>-' first, then any '-<modId>-' file of
        the exact expected size, then any '-<modId>-' file at all.
        """
        source = package.source
        if source.is_direct:
            existing = find_child_ci(self.paths.downloads, archive_name_from_url(source.url), want_dir=False)
            if existing is not None and existing.stat().st_size > 0:
                return existing
            return None

        mod_marker = f"-{source.mod_id}-"
        logical = (source.logical_filename or package.name).lower()
        prefixes = [f"{logical}{mod_marker}"]
        # Archives fetched by this tool are named after the package itself
        prefixes.append(f"{sanitize_name(package.name).lower()}{mod_marker}")
        if CREATION_CLUB_PREFIX in logical:
            prefixes.append(f"{logical.replace(CREATION_CLUB_PREFIX, '', 1)}{mod_marker}")

        candidates = [
            entry
            for entry in downloads
            if mod_marker in entry.name.lower() and not entry.name.lower().endswith(".meta")
        ]
        for entry in candidates:
            if any(entry.name.lower().startswith(prefix) for prefix in prefixes):
                return Path(entry.path)
        if source.file_size:
            for entry in candidates:
                if entry.stat().st_size == source.file_size:
                    return Path(entry.path)
        return Path(candidates[0].path) if candidates else None
