"""Snapshot factory for impact analysis tests."""
from __future__ import annotations

from typing import Callable

import pytest

from taskdeps.domain.dependency import DependencyType
from taskdeps.domain.task import Task, TaskStatus
from taskdeps.graph.adjacency import DependencyGraph
from taskdeps.store.snapshot import GraphSnapshot


@pytest.fixture
def make_snapshot() -> Callable[..., GraphSnapshot]:
    """durations: id -> duration; edges: (src, dst[, strength]) depends_on."""
    def build(
        durations: dict[str, float],
        edges: list[tuple],
        statuses: dict[str, TaskStatus] | None = None,
    ) -> GraphSnapshot:
        statuses = statuses or {}
        g = DependencyGraph()
        for tid, dur in durations.items():
            g.add_task(Task(tid, "p", duration=dur, status=statuses.get(tid, TaskStatus.PENDING)))
        for edge in edges:
            strength = edge[2] if len(edge) > 2 else 1.0
            g.add_edge(g.index_of(edge[0]), g.index_of(edge[1]), DependencyType.DEPENDS_ON, strength)
        return GraphSnapshot("p", 1, g)

    return build


@pytest.fixture
def diamond(make_snapshot) -> GraphSnapshot:
    """A(3) -> B(5) -> D(2) and A(3) -> C(1) -> D(2); baseline length 10."""
    return make_snapshot(
        {"A": 3, "B": 5, "C": 1, "D": 2},
        [("A", "B"), ("B", "D"), ("A", "C"), ("C", "D")],
    )
