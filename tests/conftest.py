from __future__ import annotations

from pathlib import Path

import pytest

from nexus_bridge.core.planner import InstancePaths
from nexus_bridge.models.collection import (
    Collection,
    OrderingRule,
    Package,
    PackageSource,
    RuleEndpoint,
)


def make_package(
    index: int,
    name: str,
    *,
    md5: str = "",
    logical: str = "",
    mod_id: int = -1,
    file_id: int = -1,
    size: int = 0,
    url: str = "",
    folder: str | None = None,
) -> Package:
    package = Package(
        index=index,
        name=name,
        source=PackageSource(
            mod_id=mod_id,
            file_id=file_id,
            file_size=size,
            md5=md5,
            logical_filename=logical,
            url=url,
        ),
    )
    if folder is not None:
        package.assign_folder(folder)
    return package


def rule(kind: str, source: str, reference: str, *, by_hash: bool = False) -> OrderingRule:
    """Builds a rule whose endpoints reference logical names (or hashes)."""
    if by_hash:
        return OrderingRule(
            type=kind,
            source=RuleEndpoint(file_md5=source),
            reference=RuleEndpoint(file_md5=reference),
        )
    return OrderingRule(
        type=kind,
        source=RuleEndpoint(logical_filename=source),
        reference=RuleEndpoint(logical_filename=reference),
    )


@pytest.fixture
def instance(tmp_path: Path) -> InstancePaths:
    paths = InstancePaths(tmp_path / "mo2")
    paths.ensure()
    return paths


@pytest.fixture
def collection_factory():
    def build(packages: list[Package], rules: list[OrderingRule] | None = None, plugins=None) -> Collection:
        return Collection(
            name="Test Collection",
            author="tester",
            packages=packages,
            rules=rules or [],
            plugins=plugins or [],
        )

    return build
