"""Tests for choosing which cycle edge to demote."""
from __future__ import annotations

import pytest

from taskdeps.domain.dependency import DependencyType
from taskdeps.graph.cycle_break import choose_cycle_break, cycle_edges


def _cycle(g, *ids: str) -> list[int]:
    return [g.index_of(t) for t in ids]


class TestChooseCycleBreak:
    def test_lowest_strength(self, make_graph) -> None:
        g = make_graph(
            {"A": 1, "B": 1, "C": 1},
            [
                ("A", "B", DependencyType.DEPENDS_ON, 0.9),
                ("B", "C", DependencyType.DEPENDS_ON, 0.2),
                ("C", "A", DependencyType.DEPENDS_ON, 0.5),
            ],
        )
        assert choose_cycle_break(g, _cycle(g, "A", "B", "C")).edge_id == 1

    def test_skips_critical_edges(self, make_graph) -> None:
        g = make_graph(
            {"A": 1, "B": 1, "C": 1},
            [
                ("A", "B", DependencyType.DEPENDS_ON, 0.9),
                ("B", "C", DependencyType.DEPENDS_ON, 0.2),
                ("C", "A", DependencyType.DEPENDS_ON, 0.5),
            ],
        )
        victim = choose_cycle_break(g, _cycle(g, "A", "B", "C"), critical_edges={1})
        assert victim.edge_id == 2

    def test_all_critical_falls_back(self, make_graph) -> None:
        g = make_graph({"A": 1, "B": 1}, [("A", "B", DependencyType.DEPENDS_ON, 0.3), ("B", "A")])
        victim = choose_cycle_break(g, _cycle(g, "A", "B"), critical_edges={0, 1})
        assert victim.edge_id == 0

    def test_prefers_new_edge_on_tie(self, make_graph) -> None:
        g = make_graph({"A": 1, "B": 1}, [("A", "B"), ("B", "A")])
        assert choose_cycle_break(g, _cycle(g, "A", "B"), new_edge=1).edge_id == 1
        assert choose_cycle_break(g, _cycle(g, "A", "B")).edge_id == 0

    def test_related_to_never_chosen(self, make_graph) -> None:
        g = make_graph(
            {"A": 1, "B": 1},
            [("A", "B", DependencyType.RELATED_TO, 0.0), ("A", "B"), ("B", "A")],
        )
        assert {e.edge_id for e in cycle_edges(g, _cycle(g, "A", "B"))} == {1, 2}
        assert choose_cycle_break(g, _cycle(g, "A", "B")).edge_id == 1

    def test_not_a_cycle(self, make_graph) -> None:
        g = make_graph({"A": 1, "B": 1}, [])
        with pytest.raises(ValueError):
            choose_cycle_break(g, _cycle(g, "A", "B"))
