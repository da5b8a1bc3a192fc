"""
Core application engine for installing collections and ordering their mods.

`InstallPlanner` decides what each package needs, `InstallPipeline` runs the
download and install pools, and `build_load_order` turns the installed state
into modlist.txt and plugins.txt.
"""

from .graph import ConstraintGraph
from .installer import InstallOutcome, PackageFetcher, PackageInstaller
from .load_order import LoadOrder, build_load_order
from .pipeline import InstallPipeline, PipelineResult
from .planner import InstallPlan, InstallPlanner, InstancePaths, PackageState
from .ranking import EnsembleSorter, SortResult
from .worker_pool import WorkerPool

__all__ = [
    "ConstraintGraph",
    "EnsembleSorter",
    "InstallOutcome",
    "InstallPipeline",
    "InstallPlan",
    "InstallPlanner",
    "InstancePaths",
    "LoadOrder",
    "PackageFetcher",
    "PackageInstaller",
    "PackageState",
    "PipelineResult",
    "SortResult",
    "WorkerPool",
    "build_load_order",
]
