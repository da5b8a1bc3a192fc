"""
Builds and writes the load order once every install has finished.
"""

import logging
from dataclasses import dataclass

from nexus_bridge.models.collection import Collection
from nexus_bridge.models.config import BridgeConfig
from nexus_bridge.models.stats import PipelineStats
from nexus_bridge.utils.structured_logger import SessionLogger

from .emitter import ProfileWriter
from .graph import ConstraintGraph
from .planner import InstancePaths
from .plugin_order import ComponentSorter, resolve_plugin_order
from .positions import PluginPositionResolver
from .ranking import EnsembleSorter, SortResult

log = logging.getLogger(__name__)


@dataclass
class LoadOrder:
    mod_order: list[str]
    plugin_order: list[str]
    sort_result: SortResult


def build_load_order(
    collection: Collection,
    paths: InstancePaths,
    config: BridgeConfig,
    stats: PipelineStats,
    sorter: ComponentSorter | None = None,
    session: SessionLogger | None = None,
    write: bool = True,
) -> LoadOrder:
    """
    Sorts plugins, ranks the mods and writes both profile files.

    Packages must already have their folder names assigned.
    """
    log.info("[bold]Generating plugins.txt...[/bold]")
    plugin_order = resolve_plugin_order(collection, paths.mods, paths.find_game_path(), sorter)

    log.info("[bold]Generating modlist.txt...[/bold]")
    packages = collection.packages
    graph = ConstraintGraph.build(packages, collection.rules)
    positions = PluginPositionResolver(config.max_workers or None).resolve(
        packages, paths.mods, plugin_order
    )
    result = EnsembleSorter(config.fusion_weights()).sort(graph, positions)
    mod_order = [graph.folders[i] for i in result.order]

    stats.increment("rules_applied", graph.applied)
    stats.increment("rules_dropped", graph.dropped)
    stats.increment("violations", result.violations)
    stats.cycle_detected = stats.cycle_detected or result.cycle_detected

    if write:
        writer = ProfileWriter(paths.profile_dir)
        writer.write_plugins(plugin_order)
        writer.write_modlist(mod_order)

    if session:
        session.load_order_built(
            mods=len(mod_order),
            plugins=len(plugin_order),
            rules_applied=graph.applied,
            rules_dropped=graph.dropped,
            violations=result.violations,
            cycle_detected=result.cycle_detected,
        )
    return LoadOrder(mod_order, plugin_order, result)
