"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the application, such as configuration, the collection
manifest and session statistics.
"""

from .collection import (
    Collection,
    OrderingRule,
    Package,
    PackageSource,
    PluginEntry,
    RuleEndpoint,
    parse_collection,
)
from .config import BridgeConfig
from .stats import PipelineStats

__all__ = [
    "BridgeConfig",
    "Collection",
    "OrderingRule",
    "Package",
    "PackageSource",
    "PipelineStats",
    "PluginEntry",
    "RuleEndpoint",
    "parse_collection",
]
