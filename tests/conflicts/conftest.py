"""Factories for conflict detection and resolution tests."""
from __future__ import annotations

from typing import Callable, Iterable

import pytest

from taskdeps.config import ResolverConfig
from taskdeps.conflicts.resolver import ConflictResolver
from taskdeps.domain.dependency import DependencyType
from taskdeps.domain.task import Task, TimeWindow
from taskdeps.graph.adjacency import DependencyGraph
from taskdeps.store.directory import InMemoryTaskDirectory
from taskdeps.store.graph_store import ProjectGraphStore
from taskdeps.store.snapshot import GraphSnapshot

PROJECT = "p"


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """Task in PROJECT; window is a plain (start, end) pair."""
    def build(
        task_id: str, duration: float = 0.0, window: tuple[float, float] | None = None, **kw
    ) -> Task:
        tw = TimeWindow(*window) if window is not None else None
        return Task(task_id, PROJECT, duration=duration, window=tw, **kw)

    return build


def _edge_args(edge: tuple) -> tuple[str, str, DependencyType, float]:
    src, dst, *rest = edge
    dep_type = rest[0] if rest else DependencyType.DEPENDS_ON
    strength = rest[1] if len(rest) > 1 else 1.0
    return src, dst, dep_type, strength


@pytest.fixture
def make_snapshot() -> Callable[..., GraphSnapshot]:
    """Raw snapshot; no invariant checks, so cycles are allowed."""
    def build(
        tasks: Iterable[Task],
        edges: Iterable[tuple] = (),
        capacities: dict[str, int] | None = None,
    ) -> GraphSnapshot:
        g = DependencyGraph()
        for t in tasks:
            g.add_task(t)
        for edge in edges:
            src, dst, dep_type, strength = _edge_args(edge)
            g.add_edge(g.index_of(src), g.index_of(dst), dep_type, strength)
        return GraphSnapshot(PROJECT, 0, g, capacities)

    return build


@pytest.fixture
def make_resolver() -> Callable[..., tuple[ProjectGraphStore, ConflictResolver]]:
    """Store populated through add_dependency plus a resolver at clock 0."""
    def build(
        tasks: Iterable[Task],
        edges: Iterable[tuple] = (),
        config: ResolverConfig | None = None,
    ) -> tuple[ProjectGraphStore, ConflictResolver]:
        tasks = list(tasks)
        store = ProjectGraphStore(PROJECT, InMemoryTaskDirectory(tasks))
        for t in tasks:
            store.register_task(t)
        for edge in edges:
            store.add_dependency(*_edge_args(edge))
        return store, ConflictResolver(store, config, clock=lambda: 0.0)

    return build
