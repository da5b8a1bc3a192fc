"""
Archive Processing Layer.

This package is responsible for all archive operations, including
downloading, extraction, integrity checks and placing files into mod folders.
"""

from .downloader import Downloader
from .extractor import ArchiveExtractor
from .integrity import ArchiveIntegrityChecker
from .materializer import MaterializeResult, PackageMaterializer

__all__ = [
    "ArchiveExtractor",
    "ArchiveIntegrityChecker",
    "Downloader",
    "MaterializeResult",
    "PackageMaterializer",
]
