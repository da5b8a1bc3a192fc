"""
Places the files of an extracted archive into a mod folder.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from nexus_bridge.models.collection import Package

from .fomod import FomodChoices, FomodInstaller, find_module_config
from .layout import copy_entries, select_variant_folder

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaterializeResult:
    """
    What the materializer did.

    `source_root` is the directory the files were copied from and `verify`
    tells the caller whether a one-to-one file count check is meaningful.
    Option-driven installs copy a subset on purpose, so they are not verified.
    """

    source_root: Path
    verify: bool
    method: str


class PackageMaterializer:
    """Chooses between a FOMOD replay, an expected-path copy and a plain copy."""

    def install(self, source_tree: Path, dest_dir: Path, package: Package) -> MaterializeResult:
        """
        Installs `source_tree` into `dest_dir` according to the package's
        recorded choices.

        Raises:
            MaterializationError: If a FOMOD config cannot be processed.
            OSError: If files cannot be copied.
        """
        module_config = find_module_config(source_tree)

        if module_config is not None and package.has_fomod_options:
            choices = FomodChoices.from_payload(package.choices)
            installed = FomodInstaller(choices).process(source_tree, dest_dir)
            log.debug(f"FOMOD install of '{package.name}' placed {installed} entries.")
            return MaterializeResult(source_tree, verify=False, method="fomod")

        if module_config is not None and package.expected_paths:
            copied = self._copy_expected(source_tree, dest_dir, package.expected_paths)
            if copied:
                return MaterializeResult(source_tree, verify=False, method="expected")
            log.warning(
                f"[yellow]No expected files found for '{package.name}', "
                "falling back to a standard copy.[/yellow]"
            )
            install_from = select_variant_folder(source_tree, package.name)
            copy_entries(install_from, dest_dir)
            return MaterializeResult(install_from, verify=False, method="standard")

        install_from = select_variant_folder(source_tree, package.name)
        copy_entries(install_from, dest_dir)
        return MaterializeResult(install_from, verify=True, method="standard")

    @staticmethod
    def _copy_expected(source_tree: Path, dest_dir: Path, expected_paths: list[str]) -> int:
        """
        Copies the files a collection recorded for this mod, locating each one
        in the archive by case-insensitive relative path or path suffix.
        """
        archive_files = {
            path.relative_to(source_tree).as_posix().lower(): path
            for path in source_tree.rglob("*")
            if path.is_file()
        }
        dest_dir.mkdir(parents=True, exist_ok=True)

        copied = 0
        for expected in expected_paths:
            wanted = expected.lower()
            source = archive_files.get(wanted)
            if source is None:
                source = next(
                    (p for rel, p in archive_files.items() if rel.endswith("/" + wanted)),
                    None,
                )
            if source is None:
                continue
            target = dest_dir / expected
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
            copied += 1
        return copied
