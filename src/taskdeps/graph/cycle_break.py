"""Pick which edge of a cycle to demote to related_to.

Used when a caller forces an edge that closes a cycle, and by the
conflict resolver for dependency conflicts.  Preference order:

  1.  edges that are not on the current critical path
  2.  lowest strength
  3.  the edge that was just added (the caller's newest intent loses)
  4.  lowest edge id

Critical edges come from a CPM run on the graph *before* the cycle
appeared; pass an empty collection when there is no acyclic baseline.
"""
from __future__ import annotations

from typing import Callable, Collection

from taskdeps.domain.types import EdgeId
from taskdeps.graph.adjacency import DependencyGraph, Edge

CycleBreaker = Callable[[DependencyGraph, list[int], "EdgeId | None", "Collection[EdgeId]"], Edge]


def cycle_edges(graph: DependencyGraph, cycle_nodes: list[int]) -> list[Edge]:
    """Every ordering edge joining consecutive nodes of the cycle."""
    edges: list[Edge] = []
    n = len(cycle_nodes)
    for i, src in enumerate(cycle_nodes):
        dst = cycle_nodes[(i + 1) % n]
        edges.extend(e for e in graph.edges_between(src, dst) if e.is_ordering)
    return edges


def choose_cycle_break(
    graph: DependencyGraph,
    cycle_nodes: list[int],
    new_edge: EdgeId | None = None,
    critical_edges: Collection[EdgeId] = (),
) -> Edge:
    candidates = cycle_edges(graph, cycle_nodes)
    if not candidates:
        raise ValueError(f"No ordering edges along cycle {cycle_nodes}")
    return min(
        candidates,
        key=lambda e: (
            e.edge_id in critical_edges,
            e.strength,
            e.edge_id != new_edge,
            e.edge_id,
        ),
    )
