"""
Builds the directed constraint graph that ordering rules describe.

Nodes are package indices. An edge `a -> b` means `a` must end up with lower
priority than `b`, i.e. `b` wins conflicts against `a`.
"""

import logging
from dataclasses import dataclass, field

from nexus_bridge.models.collection import OrderingRule, Package, RuleEndpoint

log = logging.getLogger(__name__)


@dataclass
class ConstraintGraph:
    """Adjacency lists over integer package indices."""

    size: int
    folders: list[str]
    successors: list[list[int]] = field(default_factory=list)
    predecessors: list[list[int]] = field(default_factory=list)
    applied: int = 0
    dropped: int = 0

    def __post_init__(self):
        if not self.successors:
            self.successors = [[] for _ in range(self.size)]
        if not self.predecessors:
            self.predecessors = [[] for _ in range(self.size)]

    @property
    def edge_count(self) -> int:
        return sum(len(s) for s in self.successors)

    def add_edge(self, low: int, high: int) -> bool:
        """Adds `low -> high`. Self loops and repeated edges are ignored."""
        if low == high or high in self.successors[low]:
            return False
        self.successors[low].append(high)
        self.predecessors[high].append(low)
        return True

    def sinks(self) -> list[int]:
        """Nodes without outgoing edges, sorted by folder name."""
        return sorted(
            (i for i in range(self.size) if not self.successors[i]),
            key=lambda i: self.folders[i],
        )

    @classmethod
    def build(cls, packages: list[Package], rules: list[OrderingRule]) -> "ConstraintGraph":
        """
        Resolves every rule to a pair of package positions and adds its edge.

        Endpoints are matched by file hash first and by logical file name
        second. Rules whose endpoints do not both resolve are dropped.
        """
        by_hash: dict[str, int] = {}
        by_name: dict[str, int] = {}
        for position, package in enumerate(packages):
            if package.source.md5:
                by_hash[package.source.md5.lower()] = position
            by_name[package.logical_key] = position

        def resolve(endpoint: RuleEndpoint) -> int | None:
            if endpoint.file_md5:
                found = by_hash.get(endpoint.file_md5.lower())
                if found is not None:
                    return found
            if endpoint.logical_filename:
                return by_name.get(endpoint.logical_filename)
            return None

        graph = cls(
            size=len(packages),
            folders=[p.folder_name or p.name for p in packages],
        )
        for rule in rules:
            src = resolve(rule.source)
            ref = resolve(rule.reference)
            if src is None or ref is None:
                graph.dropped += 1
                log.debug(
                    f"Dropped '{rule.type}' rule: "
                    f"{rule.source.logical_filename or rule.source.file_md5} -> "
                    f"{rule.reference.logical_filename or rule.reference.file_md5}"
                )
                continue
            if rule.type == "before":
                added = graph.add_edge(src, ref)
            else:
                added = graph.add_edge(ref, src)
            if added:
                graph.applied += 1

        log.info(
            f"Applied [cyan]{graph.applied}[/cyan] ordering rules"
            + (f" ([yellow]{graph.dropped} unresolved[/yellow])" if graph.dropped else "")
        )
        return graph
