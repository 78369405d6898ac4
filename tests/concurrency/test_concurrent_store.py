"""Stress tests: concurrent writers and readers on one project store.

Writers race to add random edges (some would close cycles, some are
duplicates); readers keep taking snapshots and running CPM on them.
Every snapshot a reader sees must be a committed, acyclic graph.
"""
from __future__ import annotations

import random
import threading

import pytest

from taskdeps.domain.errors import CycleDetectedError, DuplicateEdgeError
from taskdeps.domain.task import Task
from taskdeps.graph.critical_path import compute_critical_path
from taskdeps.graph.cycle_detector import detect_cycle
from taskdeps.store.directory import InMemoryTaskDirectory
from taskdeps.store.graph_store import ProjectGraphStore

N_TASKS = 25
N_WRITERS = 6
ADDS_PER_WRITER = 60


@pytest.fixture
def store() -> ProjectGraphStore:
    tasks = [Task(f"t{i:02d}", "p", duration=i % 5 + 1) for i in range(N_TASKS)]
    return ProjectGraphStore("p", InMemoryTaskDirectory(tasks))


def _run(threads: list[threading.Thread]) -> None:
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30.0)
    assert not any(t.is_alive() for t in threads)


@pytest.mark.slow
def test_writers_and_readers(store: ProjectGraphStore) -> None:
    added = 0
    added_lock = threading.Lock()
    writers_done = threading.Event()
    errors: list[BaseException] = []
    seen_versions: list[int] = []

    def writer(seed: int) -> None:
        nonlocal added
        rng = random.Random(seed)
        for _ in range(ADDS_PER_WRITER):
            a, b = rng.sample(range(N_TASKS), 2)
            try:
                store.add_dependency(f"t{a:02d}", f"t{b:02d}", strength=rng.random())
            except (CycleDetectedError, DuplicateEdgeError):
                continue
            except BaseException as exc:  # pragma: no cover - reported below
                errors.append(exc)
                return
            with added_lock:
                added += 1

    def reader() -> None:
        last = -1
        while not writers_done.is_set():
            snap = store.snapshot()
            try:
                assert snap.version >= last
                last = snap.version
                assert not detect_cycle(snap.graph).has_cycle
                compute_critical_path(snap.graph)
            except BaseException as exc:  # pragma: no cover - reported below
                errors.append(exc)
                return
        seen_versions.append(last)

    writers = [threading.Thread(target=writer, args=(s,)) for s in range(N_WRITERS)]
    readers = [threading.Thread(target=reader) for _ in range(3)]
    for t in readers:
        t.start()
    _run(writers)
    writers_done.set()
    for t in readers:
        t.join(timeout=30.0)

    assert errors == []
    assert store.version == added
    assert len(store.snapshot().dependencies()) == added
    assert store.validate() == []
    assert all(v <= added for v in seen_versions)


@pytest.mark.slow
def test_forced_adds_keep_graph_acyclic(store: ProjectGraphStore) -> None:
    broken: list[int] = []
    store.subscribe(lambda event: broken.append(event.edge_id))
    errors: list[BaseException] = []

    def writer(seed: int) -> None:
        rng = random.Random(seed)
        for _ in range(ADDS_PER_WRITER):
            a, b = rng.sample(range(N_TASKS), 2)
            try:
                store.add_dependency(f"t{a:02d}", f"t{b:02d}", force=True)
            except DuplicateEdgeError:
                continue
            except BaseException as exc:  # pragma: no cover - reported below
                errors.append(exc)
                return

    _run([threading.Thread(target=writer, args=(100 + s,)) for s in range(N_WRITERS)])

    assert errors == []
    assert store.validate() == []
    snap = store.snapshot()
    demoted = {d.edge_id for d in snap.dependencies() if not d.is_ordering}
    assert set(broken) <= demoted
    assert broken, "expected at least one cycle to be auto-broken"
