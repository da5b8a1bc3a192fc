"""
Storage Layer.

This package handles all data persistence, including the configuration file
and the registry of mod folder assignments.
"""

from .config_manager import ConfigManager
from .folder_registry import FolderRegistry, default_folder_name

__all__ = ["ConfigManager", "FolderRegistry", "default_folder_name"]
