"""Engine fixtures: two projects behind one in-memory directory."""
from __future__ import annotations

import pytest

from taskdeps.domain.task import Task
from taskdeps.engine import DependencyEngine
from taskdeps.store.directory import InMemoryTaskDirectory


@pytest.fixture
def directory() -> InMemoryTaskDirectory:
    return InMemoryTaskDirectory([
        Task("A", "p", duration=3),
        Task("B", "p", duration=5),
        Task("C", "p", duration=1),
        Task("D", "p", duration=2),
        Task("X", "q", duration=4),
        Task("Y", "q", duration=1),
    ])


@pytest.fixture
def engine(directory: InMemoryTaskDirectory) -> DependencyEngine:
    return DependencyEngine(directory, clock=lambda: 0.0)


@pytest.fixture
def diamond_engine(engine: DependencyEngine) -> DependencyEngine:
    """Project p wired as A -> B -> D, A -> C -> D (edge ids 0..3)."""
    for src, dst in [("A", "B"), ("B", "D"), ("A", "C"), ("C", "D")]:
        engine.add_dependency(src, dst)
    return engine
