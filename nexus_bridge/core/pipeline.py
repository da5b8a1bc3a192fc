"""
The coordinator that runs downloads and installs on two worker pools.
"""

import logging
import queue
import time
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable

from rich.markup import escape

from nexus_bridge.cli.progress_manager import ProgressManager
from nexus_bridge.models.collection import Package
from nexus_bridge.models.config import BridgeConfig
from nexus_bridge.models.stats import PipelineStats
from nexus_bridge.utils.formatting import package_label
from nexus_bridge.utils.structured_logger import PackageLogger

from .installer import InstallOutcome, PackageFetcher, PackageInstaller
from .planner import InstallPlan, PackageState
from .worker_pool import Failure, Success, Task, TaskResult, WorkerPool, resolve_worker_count

log = logging.getLogger(__name__)

ContinuePolicy = Callable[[list[tuple[Package, str]]], bool]


@dataclass
class PipelineResult:
    """Everything the caller needs once both pools have drained."""

    stats: PipelineStats
    failures: dict[int, str] = field(default_factory=dict)
    outcomes: dict[int, InstallOutcome] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancelled


class InstallPipeline:
    """
    Runs the acquire/install pipeline for a plan.

    Download results flow back through a queue to this coordinator, which
    enqueues the install task for every archive that arrived. Transient
    download failures are retried in later passes on a smaller pool; anything
    else is recorded as final straight away.
    """

    def __init__(
        self,
        config: BridgeConfig,
        fetcher: PackageFetcher,
        installer: PackageInstaller,
        stats: PipelineStats,
        progress: ProgressManager | None = None,
        events: PackageLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.fetcher = fetcher
        self.installer = installer
        self.stats = stats
        self.progress = progress
        self.events = events
        self._sleep = sleep
        self._total = 0
        self._last_errors: dict[int, str] = {}

    def run(self, plan: InstallPlan, continue_policy: ContinuePolicy) -> PipelineResult:
        """
        Downloads and installs every package of the plan that needs it.

        Args:
            plan: The output of `InstallPlanner.plan`.
            continue_policy: Asked with the failed packages and their reasons
                once everything has drained; returning False cancels the run.
        """
        result = PipelineResult(self.stats)
        self._last_errors = {}
        packages = {entry.package.index: entry.package for entry in plan.entries}
        self._total = len(plan.entries)
        self.stats.total_packages = self._total

        for entry in plan.with_state(PackageState.INSTALLED):
            self.stats.increment("skipped")
            if self.events:
                self.events.package_skipped(entry.package.index, entry.package.name, "installed")
        for entry in plan.with_state(PackageState.UNSUPPORTED):
            self.stats.increment("unsupported")
            if self.events:
                self.events.package_skipped(entry.package.index, entry.package.name, "unsupported")

        ready = plan.with_state(PackageState.READY)
        to_download = [e.package for e in plan.with_state(PackageState.DOWNLOAD)]
        workers = resolve_worker_count(self.config.max_workers)

        if self.progress:
            self.progress.start_phase("download", len(to_download))
            self.progress.start_phase("install", len(ready) + len(to_download))

        install_results: "queue.Queue[TaskResult]" = queue.Queue()
        install_pool = WorkerPool("install", workers, install_results)
        try:
            for entry in ready:
                install_pool.submit(self._install_task(entry.package, entry.archive_path))

            pending = self._download_pass(to_download, workers, 1, install_pool, result)
            for retry in range(1, self.config.download_retries + 1):
                if not pending:
                    break
                retry_workers = min(workers, self.config.retry_workers)
                log.info(
                    f"[yellow]Retrying {len(pending)} failed downloads in "
                    f"{self.config.retry_backoff:g}s (attempt {retry + 1}, "
                    f"{retry_workers} workers)...[/yellow]"
                )
                self._sleep(self.config.retry_backoff)
                pending = self._download_pass(pending, retry_workers, retry + 1, install_pool, result)

            for package in pending:
                self._record_download_failure(package, result)

            install_pool.drain()
        finally:
            install_pool.shutdown()

        self._collect_installs(install_results, packages, result)

        if result.failures:
            failed = [(packages[i], result.failures[i]) for i in sorted(result.failures)]
            log.warning(f"[yellow]{len(failed)} packages failed.[/yellow]")
            if not continue_policy(failed):
                result.cancelled = True
        return result

    def _install_task(self, package: Package, archive: Path) -> Task[InstallOutcome]:
        def run() -> InstallOutcome:
            try:
                return self.installer.install(package, archive)
            finally:
                if self.progress:
                    self.progress.advance("install")

        return Task("install", package.index, run)

    def _download_pass(
        self,
        packages: list[Package],
        workers: int,
        attempt: int,
        install_pool: WorkerPool,
        result: PipelineResult,
    ) -> list[Package]:
        """
        Runs one download pass and returns the packages that failed transiently.
        """
        if not packages:
            return []

        by_index = {p.index: p for p in packages}
        retry: list[Package] = []
        results: "queue.Queue[TaskResult]" = queue.Queue()

        with WorkerPool(f"download-{attempt}", workers, results) as pool:
            for package in packages:
                pool.submit(
                    Task("download", package.index, partial(self.fetcher.fetch, package, attempt), attempt)
                )

            for _ in range(len(packages)):
                outcome = results.get()
                package = by_index[outcome.task.package_index]
                label = package_label(package.index, self._total, escape(package.name))

                if isinstance(outcome, Success):
                    self.stats.increment("downloaded")
                    log.info(f"  [green]↓[/green] {label}")
                    if self.progress:
                        self.progress.advance("download")
                    install_pool.submit(self._install_task(package, outcome.value))
                    continue

                if self.events:
                    self.events.download_failed(
                        package.index, package.name, outcome.reason, outcome.transient, attempt
                    )
                self._last_errors[package.index] = outcome.reason
                if outcome.transient:
                    log.debug(f"Transient failure for '{package.name}': {outcome.reason}")
                    retry.append(package)
                else:
                    self._record_download_failure(package, result)

            pool.drain()
        return retry

    def _record_download_failure(self, package: Package, result: PipelineResult) -> None:
        reason = self._last_errors.get(package.index, "unknown error")
        result.failures[package.index] = reason
        self.stats.increment("failed_downloads")
        if self.progress:
            self.progress.advance("download")
            self.progress.advance("install")
        label = package_label(package.index, self._total, escape(package.name))
        log.error(f"  [red]✗ Download failed:[/red] {label} ({escape(reason)})")

    def _collect_installs(
        self,
        results: "queue.Queue[TaskResult]",
        packages: dict[int, Package],
        result: PipelineResult,
    ) -> None:
        """Merges the install pool's results after it has drained."""
        while True:
            try:
                outcome = results.get_nowait()
            except queue.Empty:
                break
            package = packages[outcome.task.package_index]
            label = package_label(package.index, self._total, escape(package.name))
            if isinstance(outcome, Failure):
                self.stats.increment("failed_installs")
                result.failures[package.index] = outcome.reason
                log.error(f"  [red]✗ Install failed:[/red] {label} ({escape(outcome.reason)})")
                if self.events:
                    self.events.install_failed(package.index, package.name, outcome.reason)
                continue
            self.stats.increment("installed")
            result.outcomes[package.index] = outcome.value
            log.info(f"  [green]✓[/green] {label} [dim]({outcome.value.files} files)[/dim]")
