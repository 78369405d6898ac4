"""Shared fixtures for graph store tests."""
from __future__ import annotations

import pytest

from taskdeps.domain.task import Task
from taskdeps.store.directory import InMemoryTaskDirectory
from taskdeps.store.graph_store import CycleAutoBroken, ProjectGraphStore

PROJECT = "proj"


@pytest.fixture
def directory() -> InMemoryTaskDirectory:
    """Tasks A..F in PROJECT plus one task in another project."""
    tasks = [
        Task("A", PROJECT, duration=3),
        Task("B", PROJECT, duration=5),
        Task("C", PROJECT, duration=1),
        Task("D", PROJECT, duration=2),
        Task("E", PROJECT, duration=10),
        Task("F", PROJECT, duration=1),
        Task("X", "other", duration=1),
    ]
    return InMemoryTaskDirectory(tasks)


@pytest.fixture
def store(directory: InMemoryTaskDirectory) -> ProjectGraphStore:
    return ProjectGraphStore(PROJECT, directory)


@pytest.fixture
def events(store: ProjectGraphStore) -> list[CycleAutoBroken]:
    """Every CycleAutoBroken the store emits."""
    seen: list[CycleAutoBroken] = []
    store.subscribe(seen.append)
    return seen
