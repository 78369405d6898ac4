"""Shared fixtures for graph algorithm tests."""
from __future__ import annotations

from typing import Callable

import pytest

from taskdeps.domain.dependency import DependencyType
from taskdeps.domain.task import Task
from taskdeps.graph.adjacency import DependencyGraph

GraphFactory = Callable[..., DependencyGraph]


def build_graph(
    durations: dict[str, float],
    edges: list[tuple],
    project: str = "p",
) -> DependencyGraph:
    """Edges are (src, dst[, dep_type[, strength]]); default depends_on, 1.0."""
    g = DependencyGraph()
    for tid, dur in durations.items():
        g.add_task(Task(tid, project, duration=dur))
    for edge in edges:
        src, dst = edge[0], edge[1]
        dep_type = edge[2] if len(edge) > 2 else DependencyType.DEPENDS_ON
        strength = edge[3] if len(edge) > 3 else 1.0
        g.add_edge(g.index_of(src), g.index_of(dst), dep_type, strength)
    return g


@pytest.fixture
def make_graph() -> GraphFactory:
    return build_graph


@pytest.fixture
def empty_graph() -> DependencyGraph:
    return DependencyGraph()


@pytest.fixture
def chain() -> DependencyGraph:
    """A -> B -> C, unit durations."""
    return build_graph({"A": 1, "B": 1, "C": 1}, [("A", "B"), ("B", "C")])


@pytest.fixture
def diamond() -> DependencyGraph:
    """
    A(3) -> B(5) -> D(2)
    A(3) -> C(1) -> D(2)

    Edge ids: A->B 0, B->D 1, A->C 2, C->D 3.
    """
    return build_graph(
        {"A": 3, "B": 5, "C": 1, "D": 2},
        [("A", "B"), ("B", "D"), ("A", "C"), ("C", "D")],
    )
