from __future__ import annotations

import math
import random

import pytest

from nexus_bridge.core.graph import ConstraintGraph
from nexus_bridge.core.ranking import (
    DEFAULT_WEIGHTS,
    DepthFirstRanker,
    EnsembleSorter,
    KahnRanker,
    ManifestOrderRanker,
    PositionRanker,
    count_violations,
    fuse_rankings,
    kahn_order,
)

from conftest import make_package, rule


def _packages(names: list[str]):
    return [make_package(i, n, logical=n, folder=n) for i, n in enumerate(names)]


def _priority(order: list[int], names: list[str]) -> list[str]:
    return [names[i] for i in order]


def test_scenario_constraint_and_position_pull() -> None:
    names = ["X", "Y", "Z"]
    graph = ConstraintGraph.build(_packages(names), [rule("before", "X", "Y")])
    result = EnsembleSorter().sort(graph, [5, 10, 0])

    emitted = _priority(result.order, names)
    assert emitted == ["Y", "X", "Z"]
    assert emitted.index("Y") < emitted.index("X")
    assert result.violations == 0
    assert result.cycle_detected is False


def test_two_node_cycle_reports_one_violation() -> None:
    names = ["A", "B"]
    rules = [rule("before", "A", "B"), rule("before", "B", "A")]
    graph = ConstraintGraph.build(_packages(names), rules)
    result = EnsembleSorter().sort(graph, [math.inf, math.inf])

    assert sorted(result.order) == [0, 1]
    assert result.violations == 1
    assert result.cycle_detected is True


def test_after_rule_is_honoured() -> None:
    names = ["Base", "Patch"]
    # Patch after Base: Patch must win
    graph = ConstraintGraph.build(_packages(names), [rule("after", "Patch", "Base")])
    result = EnsembleSorter().sort(graph, [0, 1])
    assert _priority(result.order, names) == ["Patch", "Base"]


@pytest.mark.parametrize("seed", range(10))
def test_random_acyclic_rules_always_satisfied(seed: int) -> None:
    rng = random.Random(seed)
    names = [f"mod{i:02d}" for i in range(25)]
    # Edges only go from a lower to a higher hidden rank, so no cycles
    hidden = list(range(len(names)))
    rng.shuffle(hidden)
    rules = []
    for _ in range(40):
        a, b = rng.sample(range(len(names)), 2)
        if hidden[a] > hidden[b]:
            a, b = b, a
        rules.append(rule("before", names[a], names[b]))
    positions = [rng.choice([math.inf, rng.randint(0, 50)]) for _ in names]

    graph = ConstraintGraph.build(_packages(names), rules)
    result = EnsembleSorter().sort(graph, positions)

    assert sorted(result.order) == list(range(len(names)))
    assert result.violations == 0
    rank = {node: pos for pos, node in enumerate(result.order)}
    for low in range(graph.size):
        for high in graph.successors[low]:
            assert rank[high] < rank[low]


def test_order_is_permutation_with_unresolved_and_cyclic_rules() -> None:
    names = ["a", "b", "c", "d"]
    rules = [
        rule("before", "a", "b"),
        rule("before", "b", "c"),
        rule("before", "c", "a"),
        rule("after", "d", "missing"),
    ]
    graph = ConstraintGraph.build(_packages(names), rules)
    result = EnsembleSorter().sort(graph, [3, 2, 1, 0])
    assert sorted(result.order) == [0, 1, 2, 3]
    assert graph.dropped == 1


def test_sort_is_deterministic() -> None:
    names = ["m1", "m2", "m3", "m4", "m5"]
    rules = [rule("before", "m1", "m3"), rule("after", "m2", "m5")]
    positions = [4, math.inf, 1, 1, 0]
    first = EnsembleSorter().sort(ConstraintGraph.build(_packages(names), rules), positions)
    second = EnsembleSorter().sort(ConstraintGraph.build(_packages(names), rules), positions)
    assert first.order == second.order


def test_empty_graph() -> None:
    result = EnsembleSorter().sort(ConstraintGraph.build([], []), [])
    assert result.order == []
    assert result.violations == 0


def test_depth_first_ranks_sinks_by_folder_name() -> None:
    names = ["X", "Y", "Z"]
    graph = ConstraintGraph.build(_packages(names), [rule("before", "X", "Y")])
    ranker = DepthFirstRanker()
    assert ranker.rank(graph) == [2, 1, 0]
    assert ranker.cycle_detected is False


def test_kahn_breaks_ties_by_key_and_appends_cycles() -> None:
    names = ["a", "b", "c"]
    graph = ConstraintGraph.build(
        _packages(names), [rule("before", "a", "b"), rule("before", "b", "a")]
    )
    assert kahn_order(graph, [2, 1, 0]) == [2, 1, 0]
    assert KahnRanker([0, 1, 2]).rank(graph) == [1, 2, 0]


def test_position_ranker_puts_unmatched_last_in_manifest_order() -> None:
    graph = ConstraintGraph.build(_packages(["a", "b", "c", "d"]), [])
    ranks = PositionRanker([math.inf, 3, math.inf, 1]).rank(graph)
    assert ranks == [2, 1, 3, 0]
    assert ManifestOrderRanker().rank(graph) == [0, 1, 2, 3]


def test_fuse_rankings_weights_and_stable_ties() -> None:
    rankings = {"depth_first": [0, 1], "kahn": [1, 0], "position": [0, 1], "manifest": [0, 1]}
    assert fuse_rankings(rankings, DEFAULT_WEIGHTS) == [0, 1]
    tied = {"depth_first": [1, 0], "kahn": [0, 1]}
    assert fuse_rankings(tied, {"depth_first": 1.0, "kahn": 1.0}) == [0, 1]


def test_fuse_rankings_rejects_zero_weights() -> None:
    with pytest.raises(ValueError):
        fuse_rankings({"kahn": [0]}, {"kahn": 0.0})


def test_count_violations() -> None:
    graph = ConstraintGraph.build(_packages(["a", "b"]), [rule("before", "a", "b")])
    assert count_violations(graph, [0, 1]) == 0
    assert count_violations(graph, [1, 0]) == 1
