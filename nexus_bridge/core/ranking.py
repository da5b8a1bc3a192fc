"""
Ensemble ranking of packages into one mod priority order.

Four independent strategies each produce a rank per package. Their weighted
average becomes the tie-break key for a final Kahn pass over the constraint
graph, so hard rules always win and the consensus only orders packages the
rules leave free.
"""

import heapq
import logging
import math
from dataclasses import dataclass
from typing import Protocol, Sequence

from .graph import ConstraintGraph

log = logging.getLogger(__name__)

DEFAULT_WEIGHTS = {
    "depth_first": 2.0,
    "kahn": 2.0,
    "position": 1.5,
    "manifest": 0.5,
}

UNVISITED, IN_PROGRESS, DONE = 0, 1, 2


def ranks_from_order(order: Sequence[int]) -> list[int]:
    """Turns a sequence of node indices into a rank per node."""
    ranks = [0] * len(order)
    for position, node in enumerate(order):
        ranks[node] = position
    return ranks


def kahn_order(graph: ConstraintGraph, key: Sequence[float]) -> list[int]:
    """
    Topological order with a tie-break key, lowest key first.

    Nodes caught in a cycle never reach in-degree zero; they are appended at
    the end ordered by key so the result is always a full permutation.
    """
    in_degree = [len(p) for p in graph.predecessors]
    ready = [(key[i], i) for i in range(graph.size) if in_degree[i] == 0]
    heapq.heapify(ready)

    order: list[int] = []
    while ready:
        _, node = heapq.heappop(ready)
        order.append(node)
        for succ in graph.successors[node]:
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                heapq.heappush(ready, (key[succ], succ))

    if len(order) < graph.size:
        placed = set(order)
        remaining = sorted((i for i in range(graph.size) if i not in placed), key=lambda i: (key[i], i))
        log.debug(f"Kahn pass left {len(remaining)} nodes in cycles.")
        order.extend(remaining)
    return order


def count_violations(graph: ConstraintGraph, order: Sequence[int]) -> int:
    """Counts edges whose low end is placed after their high end."""
    position = ranks_from_order(order)
    return sum(
        1
        for node in range(graph.size)
        for pred in graph.predecessors[node]
        if position[pred] > position[node]
    )


class Ranker(Protocol):
    """A strategy that ranks every node of the graph, 0 being the lowest."""

    name: str

    def rank(self, graph: ConstraintGraph) -> list[int]: ...


class DepthFirstRanker:
    """
    Post-order DFS walking backwards from the sinks.

    Sinks and leftover nodes are visited in folder name order. The resulting
    sequence is reversed before ranks are read off it, so sinks end up with the
    lowest ranks.
    """

    name = "depth_first"

    def __init__(self):
        self.cycle_detected = False

    def rank(self, graph: ConstraintGraph) -> list[int]:
        state = [UNVISITED] * graph.size
        visited: list[int] = []
        self.cycle_detected = False

        def visit(start: int) -> None:
            stack = [(start, 0)]
            state[start] = IN_PROGRESS
            while stack:
                node, next_pred = stack[-1]
                preds = graph.predecessors[node]
                while next_pred < len(preds):
                    pred = preds[next_pred]
                    next_pred += 1
                    if state[pred] == UNVISITED:
                        stack[-1] = (node, next_pred)
                        state[pred] = IN_PROGRESS
                        stack.append((pred, 0))
                        break
                    if state[pred] == IN_PROGRESS:
                        self.cycle_detected = True
                else:
                    state[node] = DONE
                    visited.append(node)
                    stack.pop()

        for sink in graph.sinks():
            if state[sink] == UNVISITED:
                visit(sink)
        for node in sorted(range(graph.size), key=lambda i: graph.folders[i]):
            if state[node] == UNVISITED:
                visit(node)

        if self.cycle_detected:
            log.warning("[yellow]Cycle detected in ordering rules, some mods may be misordered.[/yellow]")
        visited.reverse()
        return ranks_from_order(visited)


class KahnRanker:
    """Kahn's algorithm broken by plugin position."""

    name = "kahn"

    def __init__(self, positions: Sequence[float]):
        self.positions = positions

    def rank(self, graph: ConstraintGraph) -> list[int]:
        return ranks_from_order(kahn_order(graph, self.positions))


class PositionRanker:
    """Orders purely by earliest plugin position; unmatched packages go last."""

    name = "position"

    def __init__(self, positions: Sequence[float]):
        self.positions = positions

    def rank(self, graph: ConstraintGraph) -> list[int]:
        order = sorted(range(graph.size), key=lambda i: self.positions[i])
        return ranks_from_order(order)


class ManifestOrderRanker:
    name = "manifest"

    def rank(self, graph: ConstraintGraph) -> list[int]:
        return list(range(graph.size))


def fuse_rankings(rankings: dict[str, list[int]], weights: dict[str, float]) -> list[int]:
    """
    Combines several rankings into one by weighted average.

    Returns:
        An integer rank per node. Equal scores keep their original order.
    """
    total = sum(weights[name] for name in rankings)
    if total <= 0:
        raise ValueError("Fusion weights must add up to a positive number.")
    size = len(next(iter(rankings.values()), []))
    scores = [
        sum(weights[name] * ranks[i] for name, ranks in rankings.items()) / total
        for i in range(size)
    ]
    return ranks_from_order(sorted(range(size), key=lambda i: scores[i]))


@dataclass
class SortResult:
    order: list[int]
    violations: int = 0
    cycle_detected: bool = False


class EnsembleSorter:
    """
    Runs every ranker, fuses their votes and re-validates against the graph.
    """

    def __init__(self, weights: dict[str, float] | None = None):
        self.weights = dict(weights or DEFAULT_WEIGHTS)

    def sort(self, graph: ConstraintGraph, positions: Sequence[float]) -> SortResult:
        """
        Args:
            graph: The constraint graph over the packages.
            positions: Earliest plugin position per package, `math.inf` when a
                package has no sorted plugin.

        Returns:
            A `SortResult` whose `order` lists package indices highest
            priority first.
        """
        if graph.size == 0:
            return SortResult([])

        depth_first = DepthFirstRanker()
        rankers: list[Ranker] = [
            depth_first,
            KahnRanker(positions),
            PositionRanker(positions),
            ManifestOrderRanker(),
        ]
        rankings = {ranker.name: ranker.rank(graph) for ranker in rankers}
        combined = fuse_rankings(rankings, self.weights)

        final = kahn_order(graph, combined)
        violations = count_violations(graph, final)
        if violations:
            log.warning(
                f"[yellow]{violations} constraint violations (cycles in mod rules).[/yellow]"
            )

        with_plugins = sum(1 for p in positions if not math.isinf(p))
        log.debug(f"{with_plugins}/{graph.size} packages have plugins for position sorting.")

        final.reverse()
        return SortResult(final, violations, depth_first.cycle_detected)
