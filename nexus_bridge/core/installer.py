"""
Handles the processing of a single package, from archive to mod folder.
"""

import itertools
import logging
import shutil
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from rich.markup import escape

from nexus_bridge.api.client import NexusAPIClient
from nexus_bridge.archive import (
    ArchiveExtractor,
    ArchiveIntegrityChecker,
    Downloader,
    PackageMaterializer,
)
from nexus_bridge.archive.layout import (
    copy_tree_files,
    count_files,
    detect_wrapper_folder,
    fix_backslash_paths,
    flatten_data_folder,
)
from nexus_bridge.exceptions import ExtractionError, TransferRejectedError
from nexus_bridge.models.collection import Package
from nexus_bridge.models.stats import PipelineStats
from nexus_bridge.utils.structured_logger import PackageLogger

from .planner import InstancePaths, archive_name_for

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallOutcome:
    """The result of a finished install task."""

    folder: str
    files: int
    method: str
    complete: bool


class PackageFetcher:
    """Downloads the archive of one package. One call is one attempt."""

    def __init__(
        self,
        paths: InstancePaths,
        downloader: Downloader,
        api_client: NexusAPIClient | None,
        game_domain: str,
        stats: PipelineStats,
        events: PackageLogger | None = None,
        on_bytes: Optional[Callable[[int], None]] = None,
    ):
        self.paths = paths
        self.downloader = downloader
        self.api_client = api_client
        self.game_domain = game_domain
        self.stats = stats
        self.events = events
        self.on_bytes = on_bytes

    def _resolve_url(self, package: Package) -> str:
        source = package.source
        if source.is_direct:
            return source.url
        if self.api_client is None:
            raise TransferRejectedError("No API client available for Nexus downloads.")
        links = self.api_client.download_links(
            self.game_domain, source.mod_id, source.file_id
        )
        if not links:
            raise TransferRejectedError(f"No download links for '{package.name}'.")
        return links[0]

    def fetch(self, package: Package, attempt: int = 1) -> Path:
        """
        Downloads the package archive into the instance's downloads folder.

        Returns:
            The path of the downloaded archive.
        """
        self.stats.increment("download_attempts")
        if self.events:
            self.events.download_started(package.index, package.name, attempt)

        started = time.monotonic()
        url = self._resolve_url(package)
        destination = self.paths.downloads / archive_name_for(package)
        size = self.downloader.fetch(
            url, destination, package.source.file_size, on_progress=self.on_bytes
        )
        self.stats.increment("bytes_downloaded", size)
        if self.events:
            self.events.download_completed(
                package.index, package.name, size, time.monotonic() - started
            )

        # A mismatch keeps the archive; the install still runs
        intact = ArchiveIntegrityChecker.check_size(
            destination, package.source.file_size
        ) and ArchiveIntegrityChecker.check_md5(destination, package.source.md5)
        if not intact:
            self.stats.increment("integrity_warnings")
            if self.events:
                self.events.integrity_mismatch(package.index, package.name, destination.name)
        return destination


class PackageInstaller:
    """
    Turns a downloaded archive into an installed mod folder.

    Each install extracts into its own scratch directory, unwraps wrapper
    folders, hands the content to the materializer and, for plain copies,
    verifies that every source file arrived.
    """

    def __init__(
        self,
        paths: InstancePaths,
        stats: PipelineStats,
        extractor: ArchiveExtractor | None = None,
        materializer: PackageMaterializer | None = None,
        events: PackageLogger | None = None,
    ):
        self.paths = paths
        self.stats = stats
        self.extractor = extractor or ArchiveExtractor()
        self.materializer = materializer or PackageMaterializer()
        self.events = events
        self._ordinals = itertools.count(1)
        self._ordinal_lock = threading.Lock()

    def _next_ordinal(self) -> int:
        with self._ordinal_lock:
            return next(self._ordinals)

    def install(self, package: Package, archive: Path) -> InstallOutcome:
        """
        Installs `archive` into the package's mod folder.

        Raises:
            ExtractionError: If the archive cannot be unpacked.
            MaterializationError: If the files cannot be placed.
        """
        if not package.folder_name:
            raise ValueError(f"Package '{package.name}' has no folder assigned.")

        scratch = self.paths.scratch / f"{package.folder_name}_{package.index}_{self._next_ordinal()}"
        destination = self.paths.mods / package.folder_name
        try:
            if scratch.exists():
                shutil.rmtree(scratch)
            if not self.extractor.extract(archive, scratch):
                raise ExtractionError(f"Could not extract '{archive.name}'.")

            fix_backslash_paths(scratch)
            content = detect_wrapper_folder(scratch)
            destination.mkdir(parents=True, exist_ok=True)

            result = self.materializer.install(content, destination, package)
            complete = True
            if result.verify:
                complete = self._verify_copy(package, result.source_root, destination)

            flatten_data_folder(destination)
            files = count_files(destination)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        if self.events:
            self.events.install_completed(package.index, package.name, package.folder_name, files)
        return InstallOutcome(package.folder_name, files, result.method, complete)

    def _verify_copy(self, package: Package, source_root: Path, destination: Path) -> bool:
        """
        Compares file counts after a plain copy. An undercount gets one clean
        retry with a file-by-file copy, after which it is only reported.
        """
        expected = count_files(source_root)
        actual = count_files(destination)
        if actual >= expected:
            return True

        log.info(
            f"  Copy incomplete for [cyan]{escape(package.name)}[/cyan] "
            f"({actual}/{expected} files). Retrying..."
        )
        shutil.rmtree(destination, ignore_errors=True)
        destination.mkdir(parents=True, exist_ok=True)
        copy_tree_files(source_root, destination)

        actual = count_files(destination)
        if actual >= expected:
            log.debug(f"Corrective copy of '{package.name}' recovered all files.")
            return True

        log.warning(
            f"  [yellow]⚠ Copy still incomplete for {escape(package.name)} "
            f"({actual}/{expected} files).[/yellow]"
        )
        self.stats.increment("install_warnings")
        if self.events:
            self.events.install_warning(package.index, package.name, expected, actual)
        return False
