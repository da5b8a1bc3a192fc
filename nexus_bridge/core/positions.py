"""
Finds, for every installed package, where its plugins land in the sorted
plugin order.
"""

import logging
import math
import os
import queue
import threading
from pathlib import Path

from nexus_bridge.models.collection import Package

from .plugin_order import PLUGIN_EXTENSIONS
from .worker_pool import Failure, Task, TaskResult, WorkerPool

log = logging.getLogger(__name__)


class PluginPositionResolver:
    """
    Scans mod folders concurrently and records the earliest plugin position of
    each one. Packages without a sorted plugin get `math.inf`.
    """

    def __init__(self, workers: int | None = None):
        self.workers = workers
        self._lock = threading.Lock()
        self._earliest: dict[int, float] = {}

    @staticmethod
    def build_position_map(plugin_order: list[str]) -> dict[str, int]:
        """Lowercased plugin name to its index in the order. Later duplicates win."""
        return {name.lower(): i for i, name in enumerate(plugin_order)}

    def _scan(self, slot: int, folder: Path, positions: dict[str, int]) -> float:
        earliest = math.inf
        if folder.is_dir():
            for root, _, files in os.walk(folder):
                for filename in files:
                    if os.path.splitext(filename)[1].lower() not in PLUGIN_EXTENSIONS:
                        continue
                    found = positions.get(filename.lower())
                    if found is not None and found < earliest:
                        earliest = found
        with self._lock:
            self._earliest[slot] = earliest
        return earliest

    def resolve(self, packages: list[Package], mods_dir: Path, plugin_order: list[str]) -> list[float]:
        """
        Returns the earliest plugin position per package, in `packages` order.
        """
        positions = self.build_position_map(plugin_order)
        self._earliest = {}
        if not packages:
            return []

        results: "queue.Queue[TaskResult]" = queue.Queue()
        with WorkerPool("scan", self.workers, results) as pool:
            for slot, package in enumerate(packages):
                folder = mods_dir / (package.folder_name or package.name)
                pool.submit(Task("scan", package.index, lambda s=slot, f=folder: self._scan(s, f, positions)))
            pool.drain()

        while not results.empty():
            outcome = results.get_nowait()
            if isinstance(outcome, Failure):
                log.debug(f"Plugin scan failed for package {outcome.task.package_index}: {outcome.reason}")

        with self._lock:
            earliest = [self._earliest.get(slot, math.inf) for slot in range(len(packages))]
        matched = sum(1 for p in earliest if not math.isinf(p))
        log.info(f"[cyan]{matched}/{len(packages)}[/cyan] mods have plugins for position sorting")
        return earliest
