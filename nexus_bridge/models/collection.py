"""
Data models for a Nexus Mods collection manifest and the parser that builds them.
"""

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from nexus_bridge.exceptions import ParseError
from nexus_bridge.models.config import DEFAULT_GAME_DOMAIN

log = logging.getLogger(__name__)


class PackageSource(BaseModel):
    """Where a package archive comes from."""

    type: str = "nexus"
    mod_id: int = -1
    file_id: int = -1
    file_size: int = 0
    md5: str = ""
    logical_filename: str = ""
    url: str = ""
    tag: str = ""

    @property
    def is_direct(self) -> bool:
        return bool(self.url)

    @property
    def has_catalog_ids(self) -> bool:
        return self.mod_id > 0 and self.file_id > 0


class Package(BaseModel):
    """A single mod entry of a collection."""

    model_config = ConfigDict(frozen=True)

    index: int
    name: str
    phase: int = 0
    source: PackageSource = Field(default_factory=PackageSource)
    choices: dict[str, Any] | None = None
    expected_paths: list[str] = Field(default_factory=list)

    _folder_name: str | None = PrivateAttr(default=None)

    @property
    def folder_name(self) -> str | None:
        return self._folder_name

    def assign_folder(self, folder_name: str) -> None:
        """Sets the installed folder name. May only happen once per package."""
        if self._folder_name is not None:
            raise ValueError(
                f"Package '{self.name}' already has folder '{self._folder_name}'."
            )
        self._folder_name = folder_name

    @property
    def identity_key(self) -> str:
        """
        A stable key used to remember this package across runs.

        Combines the file hash, the logical name and the download locator, so
        two files sharing a logical name (a main file and its update, say)
        never share a key.
        """
        source = self.source
        if source.is_direct:
            locator = source.url
        elif source.has_catalog_ids:
            locator = f"{source.mod_id}-{source.file_id}"
        else:
            locator = ""
        logical = (source.logical_filename or self.name).lower()
        return "|".join((source.md5.lower(), logical, locator))

    @property
    def logical_key(self) -> str:
        """The name ordering rules fall back to when no hash matches."""
        return self.source.logical_filename or self.name

    @property
    def is_downloadable(self) -> bool:
        return self.source.is_direct or self.source.has_catalog_ids

    @property
    def has_fomod_options(self) -> bool:
        return bool(self.choices) and "options" in self.choices


class RuleEndpoint(BaseModel):
    """One side of an ordering rule, referenced by hash and/or logical name."""

    file_md5: str = ""
    logical_filename: str = ""


class OrderingRule(BaseModel):
    """A declared before/after constraint between two packages."""

    type: Literal["before", "after"]
    source: RuleEndpoint
    reference: RuleEndpoint


class PluginEntry(BaseModel):
    """A plugin listed by the collection with its enabled state."""

    name: str
    enabled: bool = True


class Collection(BaseModel):
    """A parsed collection manifest."""

    name: str = ""
    author: str = ""
    domain_name: str = DEFAULT_GAME_DOMAIN
    packages: list[Package] = Field(default_factory=list)
    rules: list[OrderingRule] = Field(default_factory=list)
    plugins: list[PluginEntry] = Field(default_factory=list)
    ignored_rules: int = 0


def _get(data: Any, key: str, default: Any) -> Any:
    """Reads a key from a JSON object, treating missing, null and wrong types as default."""
    if not isinstance(data, dict):
        return default
    value = data.get(key)
    if value is None:
        return default
    if default is not None and not isinstance(value, type(default)):
        # JSON numbers may arrive as floats or strings; everything else is rejected
        if isinstance(default, int) and not isinstance(default, bool):
            try:
                return int(value)
            except (TypeError, ValueError):
                return default
        return default
    return value


def _parse_package(index: int, mod: dict[str, Any]) -> Package:
    source = _get(mod, "source", {})
    choices = mod.get("choices") if isinstance(mod.get("choices"), dict) else None
    expected_paths = [
        path.replace("\\", "/")
        for entry in _get(mod, "hashes", [])
        if (path := _get(entry, "path", ""))
    ]
    return Package(
        index=index,
        name=_get(mod, "name", ""),
        phase=_get(mod, "phase", 0),
        source=PackageSource(
            type=_get(source, "type", "nexus") or "nexus",
            mod_id=_get(source, "modId", -1),
            file_id=_get(source, "fileId", -1),
            file_size=_get(source, "fileSize", 0),
            md5=_get(source, "md5", ""),
            logical_filename=_get(source, "logicalFilename", ""),
            url=_get(source, "url", ""),
            tag=_get(source, "tag", ""),
        ),
        choices=choices,
        expected_paths=expected_paths,
    )


def _parse_endpoint(data: Any) -> RuleEndpoint:
    return RuleEndpoint(
        file_md5=_get(data, "fileMD5", ""),
        logical_filename=_get(data, "logicalFileName", ""),
    )


def parse_collection(data: bytes) -> Collection:
    """
    Parses the bytes of a `collection.json` document.

    Args:
        data: Raw JSON document.

    Returns:
        The parsed Collection. Missing or null fields fall back to defaults.

    Raises:
        ParseError: If the document is not valid JSON or its root is not an object.
    """
    try:
        document = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseError(f"Collection manifest is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise ParseError("Collection manifest must be a JSON object.")

    info = _get(document, "info", {})
    packages = [
        _parse_package(index, mod)
        for index, mod in enumerate(
            m for m in _get(document, "mods", []) if isinstance(m, dict)
        )
    ]

    rules = []
    ignored = 0
    for raw_rule in _get(document, "modRules", []):
        rule_type = _get(raw_rule, "type", "")
        if rule_type not in ("before", "after"):
            ignored += 1
            continue
        rules.append(
            OrderingRule(
                type=rule_type,
                source=_parse_endpoint(_get(raw_rule, "source", {})),
                reference=_parse_endpoint(_get(raw_rule, "reference", {})),
            )
        )
    if ignored:
        log.debug(f"Ignored {ignored} mod rules that are not before/after.")

    plugins = [
        PluginEntry(name=name, enabled=bool(_get(plugin, "enabled", True)))
        for plugin in _get(document, "plugins", [])
        if (name := _get(plugin, "name", ""))
    ]

    return Collection(
        name=_get(info, "name", ""),
        author=_get(info, "author", ""),
        domain_name=_get(info, "domainName", "") or DEFAULT_GAME_DOMAIN,
        packages=packages,
        rules=rules,
        plugins=plugins,
        ignored_rules=ignored,
    )
