"""
Replays FOMOD installer choices recorded in a collection.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup
from bs4.element import Tag

from nexus_bridge.exceptions import MaterializationError
from nexus_bridge.utils.path import find_child_ci, resolve_ci

from .layout import merge_copy

log = logging.getLogger(__name__)


@dataclass
class FomodGroup:
    name: str
    choices: list[str] = field(default_factory=list)


@dataclass
class FomodStep:
    name: str
    groups: list[FomodGroup] = field(default_factory=list)


@dataclass
class FomodChoices:
    """The option selections a collection curator made for one FOMOD."""

    steps: list[FomodStep] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "FomodChoices":
        """Builds the selections from a mod's `choices` object."""
        steps = []
        options = (payload or {}).get("options")
        if not isinstance(options, list):
            return cls()
        for step in options:
            if not isinstance(step, dict):
                continue
            groups = [
                FomodGroup(
                    name=str(group.get("name") or ""),
                    choices=[
                        str(choice.get("name") or "")
                        for choice in group.get("choices") or []
                        if isinstance(choice, dict)
                    ],
                )
                for group in step.get("groups") or []
                if isinstance(group, dict)
            ]
            steps.append(FomodStep(name=str(step.get("name") or ""), groups=groups))
        return cls(steps=steps)

    def selected(self, step_name: str, group_name: str) -> set[str]:
        """Returns the lowercased option names chosen in a step/group pair."""
        result = set()
        for step in self.steps:
            if step.name.lower() != step_name.lower():
                continue
            for group in step.groups:
                if group.name.lower() == group_name.lower():
                    result.update(c.lower() for c in group.choices)
        return result


def find_module_config(root: Path) -> Path | None:
    """Finds `fomod/ModuleConfig.xml` anywhere below `root`, ignoring case."""
    for path in sorted(root.rglob("*"), key=lambda p: len(p.parts)):
        if (
            path.is_file()
            and path.name.lower() == "moduleconfig.xml"
            and path.parent.name.lower() == "fomod"
        ):
            return path
    return None


def _normalize(path: str) -> str:
    return path.replace("\\", "/").strip("/")


def _children(node: Tag | None, name: str) -> list[Tag]:
    if node is None:
        return []
    return node.find_all(name, recursive=False)


def _child(node: Tag | None, name: str) -> Tag | None:
    if node is None:
        return None
    return node.find(name, recursive=False)


class FomodInstaller:
    """Installs the files a FOMOD config selects for a given set of choices."""

    def __init__(self, choices: FomodChoices):
        self.choices = choices
        self.flags: dict[str, str] = {}
        self.files_installed = 0

    def process(self, source_tree: Path, dest_root: Path) -> int:
        """
        Runs the FOMOD found under `source_tree` into `dest_root`.

        Returns:
            The number of file and folder entries installed.

        Raises:
            MaterializationError: If the config is missing or cannot be parsed.
        """
        xml_path = find_module_config(source_tree)
        if xml_path is None:
            raise MaterializationError(f"ModuleConfig.xml not found in '{source_tree}'")

        # Paths in the config are relative to the folder holding fomod/
        src_root = xml_path.parent.parent
        config = self._load_config(xml_path)
        dest_root.mkdir(parents=True, exist_ok=True)

        self._install_files(_child(config, "requiredInstallFiles"), src_root, dest_root)

        for step in _children(_child(config, "installSteps"), "installStep"):
            step_name = step.get("name") or step.get("Name") or ""
            groups = _child(step, "optionalFileGroups")
            for group in _children(groups, "group"):
                group_name = group.get("name") or ""
                selected = self.choices.selected(step_name, group_name)
                for plugin in _children(_child(group, "plugins"), "plugin"):
                    plugin_name = (plugin.get("name") or "").lower()
                    if plugin_name not in selected:
                        continue
                    log.debug(f"FOMOD option selected: {step_name} / {group_name} / {plugin_name}")
                    self._collect_flags(plugin)
                    files = _child(plugin, "files")
                    self._install_files(files if files is not None else plugin, src_root, dest_root)

        patterns = _child(_child(config, "conditionalFileInstalls"), "patterns")
        for pattern in _children(patterns, "pattern"):
            dependencies = _child(pattern, "dependencies")
            if dependencies is None or self._evaluate(dependencies):
                self._install_files(_child(pattern, "files"), src_root, dest_root)

        return self.files_installed

    @staticmethod
    def _load_config(xml_path: Path) -> Tag:
        raw = xml_path.read_bytes()
        # Give the parser the BOM-detected encoding for UTF-16 files
        encoding = None
        if raw[:2] == b"\xff\xfe":
            encoding = "utf-16-le"
        elif raw[:2] == b"\xfe\xff":
            encoding = "utf-16-be"
        soup = BeautifulSoup(raw, "xml", from_encoding=encoding)
        config = soup.find("config") or next(
            (c for c in soup.children if isinstance(c, Tag)), None
        )
        if config is None:
            raise MaterializationError(f"No config element in '{xml_path}'")
        return config

    def _collect_flags(self, plugin: Tag) -> None:
        for flag in _children(_child(plugin, "conditionFlags"), "flag"):
            if name := flag.get("name"):
                self.flags[name] = flag.get_text()

    def _evaluate(self, dependencies: Tag) -> bool:
        """Evaluates an And/Or dependency tree against the collected flags."""
        is_and = (dependencies.get("operator") or "And").lower() == "and"
        results = [
            self._flag_matches(dep) for dep in _children(dependencies, "flagDependency")
        ]
        results.extend(self._evaluate(nested) for nested in _children(dependencies, "dependencies"))
        if not results:
            return True
        return all(results) if is_and else any(results)

    def _flag_matches(self, dependency: Tag) -> bool:
        flag = dependency.get("flag") or ""
        if flag not in self.flags:
            return False
        return self.flags[flag].lower() == (dependency.get("value") or "").lower()

    def _install_files(self, container: Tag | None, src_root: Path, dest_root: Path) -> None:
        for node in _children(container, "file"):
            self._install_file(node, src_root, dest_root)
        for node in _children(container, "folder"):
            self._install_folder(node, src_root, dest_root)

    def _install_file(self, node: Tag, src_root: Path, dest_root: Path) -> None:
        source = _normalize(node.get("source") or "")
        if not source:
            return
        destination = _normalize(node.get("destination") or "")
        if not destination:
            destination = source.rsplit("/", 1)[-1]

        source_path = src_root / source
        if not source_path.exists():
            source_path = resolve_ci(src_root, source) or source_path
        if not source_path.is_file():
            log.debug(f"FOMOD file not found: {source}")
            return
        try:
            target = dest_root / destination
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source_path, target)
            self.files_installed += 1
        except OSError as e:
            log.warning(f"[yellow]Failed to copy FOMOD file {source} -> {destination}: {e}[/yellow]")

    def _install_folder(self, node: Tag, src_root: Path, dest_root: Path) -> None:
        source = _normalize(node.get("source") or "")
        if not source:
            return
        destination = _normalize(node.get("destination") or "")

        source_path = src_root / source
        if not source_path.exists():
            source_path = resolve_ci(src_root, source) or source_path
        if not source_path.is_dir():
            log.debug(f"FOMOD folder not found: {source}")
            return

        # Merge into existing destination folders that differ only by case
        target = dest_root
        for segment in destination.split("/") if destination else []:
            target = find_child_ci(target, segment, want_dir=True) or target / segment
        try:
            merge_copy(source_path, target)
            self.files_installed += 1
        except OSError as e:
            log.warning(f"[yellow]Failed to copy FOMOD folder {source} -> {destination or '/'}: {e}[/yellow]")
