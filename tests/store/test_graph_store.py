"""Tests for ProjectGraphStore: validation, forced adds, task lifecycle, transactions."""
from __future__ import annotations

import logging

import pytest

from taskdeps.domain.dependency import DependencyType
from taskdeps.domain.errors import (
    CycleDetectedError,
    DuplicateEdgeError,
    EdgeNotFoundError,
    InvalidDependencyError,
    SelfLoopError,
    TaskInUseError,
    TaskNotFoundError,
    ValidationError,
)
from taskdeps.domain.task import Task, TaskStatus, TimeWindow
from taskdeps.graph.adjacency import DependencyGraph
from taskdeps.store.graph_store import CycleAutoBroken, ProjectGraphStore, find_issues

PROJECT = "proj"


class TestAddDependency:
    def test_returns_increasing_ids(self, store: ProjectGraphStore) -> None:
        first = store.add_dependency("A", "B")
        second = store.add_dependency("B", "C", DependencyType.BLOCKS, 0.4)
        assert (first, second) == (0, 1)
        snap = store.snapshot()
        assert snap.dependency(second).strength == 0.4
        assert snap.dependency(second).dep_type is DependencyType.BLOCKS
        assert snap.version == 2

    def test_string_type_accepted(self, store: ProjectGraphStore) -> None:
        edge_id = store.add_dependency("A", "B", "prerequisite")
        assert store.snapshot().dependency(edge_id).dep_type is DependencyType.PREREQUISITE

    def test_cycle_rejected_and_graph_untouched(self, store: ProjectGraphStore) -> None:
        store.add_dependency("A", "B")
        store.add_dependency("B", "C")
        version = store.version
        with pytest.raises(CycleDetectedError) as excinfo:
            store.add_dependency("C", "A")
        assert excinfo.value.cycle_path == ["A", "B", "C"]
        assert store.version == version
        assert len(store.snapshot().dependencies()) == 2

    def test_related_to_may_close_a_loop(self, store: ProjectGraphStore) -> None:
        store.add_dependency("A", "B")
        store.add_dependency("B", "A", DependencyType.RELATED_TO)
        assert store.validate() == []

    def test_self_loop(self, store: ProjectGraphStore) -> None:
        with pytest.raises(SelfLoopError):
            store.add_dependency("A", "A")
        assert store.version == 0

    def test_duplicate_same_type(self, store: ProjectGraphStore) -> None:
        store.add_dependency("A", "B")
        with pytest.raises(DuplicateEdgeError) as excinfo:
            store.add_dependency("A", "B", strength=0.5)
        assert excinfo.value.existing_id == 0

    def test_parallel_edges_of_other_types_allowed(self, store: ProjectGraphStore) -> None:
        store.add_dependency("A", "B")
        store.add_dependency("A", "B", DependencyType.BLOCKS)
        store.add_dependency("A", "B", DependencyType.RELATED_TO)
        store.add_dependency("A", "B", DependencyType.RELATED_TO)
        assert len(store.snapshot().dependencies()) == 4

    @pytest.mark.parametrize("strength", [-0.1, 1.5, float("nan"), "strong"])
    def test_invalid_strength(self, store: ProjectGraphStore, strength) -> None:
        with pytest.raises(InvalidDependencyError):
            store.add_dependency("A", "B", strength=strength)

    def test_invalid_type(self, store: ProjectGraphStore) -> None:
        with pytest.raises(InvalidDependencyError):
            store.add_dependency("A", "B", "follows")

    def test_unknown_task(self, store: ProjectGraphStore) -> None:
        with pytest.raises(TaskNotFoundError):
            store.add_dependency("A", "nope")
        assert not store.snapshot().has_task("A")

    def test_foreign_project(self, store: ProjectGraphStore) -> None:
        with pytest.raises(ValidationError):
            store.add_dependency("A", "X")


class TestForcedAdd:
    def test_new_edge_demoted_when_old_one_is_critical(
        self, store: ProjectGraphStore, events: list[CycleAutoBroken]
    ) -> None:
        store.add_dependency("A", "B")
        edge_id = store.add_dependency("B", "A", force=True)
        snap = store.snapshot()
        assert snap.dependency(edge_id).dep_type is DependencyType.RELATED_TO
        assert snap.dependency(0).dep_type is DependencyType.DEPENDS_ON
        assert events == [
            CycleAutoBroken(
                project_id=PROJECT,
                edge_id=edge_id,
                from_task="B",
                to_task="A",
                previous_type=DependencyType.DEPENDS_ON,
                cycle_path=("A", "B"),
                trigger_edge=edge_id,
            )
        ]

    def test_weakest_non_critical_edge_demoted(
        self, store: ProjectGraphStore, events: list[CycleAutoBroken]
    ) -> None:
        store.add_dependency("A", "B", strength=0.3)
        store.add_dependency("B", "C")
        store.add_dependency("E", "C")      # E is long, so E -> C is the critical edge
        edge_id = store.add_dependency("C", "A", force=True)
        snap = store.snapshot()
        assert snap.dependency(0).dep_type is DependencyType.RELATED_TO
        assert snap.dependency(edge_id).dep_type is DependencyType.DEPENDS_ON
        assert [e.edge_id for e in events] == [0]
        assert events[0].trigger_edge == edge_id
        assert store.validate() == []

    def test_single_commit(self, store: ProjectGraphStore) -> None:
        store.add_dependency("A", "B")
        store.add_dependency("B", "A", force=True)
        assert store.version == 2

    def test_no_cycle_no_event(
        self, store: ProjectGraphStore, events: list[CycleAutoBroken]
    ) -> None:
        store.add_dependency("A", "B", force=True)
        assert events == []

    def test_listener_failure_is_logged(
        self, store: ProjectGraphStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        def broken(event: CycleAutoBroken) -> None:
            raise RuntimeError("listener down")

        received: list[CycleAutoBroken] = []
        store.subscribe(broken)
        store.subscribe(received.append)
        store.add_dependency("A", "B")
        with caplog.at_level(logging.ERROR, logger="taskdeps.store.graph_store"):
            store.add_dependency("B", "A", force=True)
        assert len(received) == 1
        assert any("failed" in r.getMessage() for r in caplog.records)

    def test_unsubscribe(
        self, store: ProjectGraphStore, events: list[CycleAutoBroken]
    ) -> None:
        store.unsubscribe(events.append)
        store.add_dependency("A", "B")
        store.add_dependency("B", "A", force=True)
        assert events == []


class TestRemoveAndUpdate:
    def test_remove(self, store: ProjectGraphStore) -> None:
        edge_id = store.add_dependency("A", "B")
        removed = store.remove_dependency(edge_id)
        assert (removed.from_task, removed.to_task) == ("A", "B")
        assert store.snapshot().dependencies() == []

    def test_remove_unknown(self, store: ProjectGraphStore) -> None:
        with pytest.raises(EdgeNotFoundError):
            store.remove_dependency(42)

    def test_ids_not_reused(self, store: ProjectGraphStore) -> None:
        edge_id = store.add_dependency("A", "B")
        store.remove_dependency(edge_id)
        assert store.add_dependency("A", "B") == edge_id + 1

    def test_update_strength(self, store: ProjectGraphStore) -> None:
        edge_id = store.add_dependency("A", "B")
        updated = store.update_dependency(edge_id, strength=0.25)
        assert updated.strength == 0.25
        assert updated.dep_type is DependencyType.DEPENDS_ON

    def test_promotion_checked_for_cycles(self, store: ProjectGraphStore) -> None:
        related = store.add_dependency("A", "B", DependencyType.RELATED_TO)
        store.add_dependency("B", "A")
        with pytest.raises(CycleDetectedError):
            store.update_dependency(related, DependencyType.DEPENDS_ON)
        assert store.snapshot().dependency(related).dep_type is DependencyType.RELATED_TO

    def test_update_into_duplicate(self, store: ProjectGraphStore) -> None:
        store.add_dependency("A", "B")
        blocks = store.add_dependency("A", "B", DependencyType.BLOCKS)
        with pytest.raises(DuplicateEdgeError):
            store.update_dependency(blocks, "depends_on")

    def test_update_bad_strength(self, store: ProjectGraphStore) -> None:
        edge_id = store.add_dependency("A", "B")
        with pytest.raises(InvalidDependencyError):
            store.update_dependency(edge_id, strength=2)


class TestGetDependencies:
    def test_direct_and_transitive(self, store: ProjectGraphStore) -> None:
        store.add_dependency("A", "B")
        store.add_dependency("B", "C")
        direct = store.get_dependencies("C")
        assert [(r.dependency.from_task, r.depth) for r in direct] == [("B", 1)]
        full = store.get_dependencies("C", include_transitive=True)
        assert sorted((r.dependency.from_task, r.depth) for r in full) == [("A", 2), ("B", 1)]

    def test_known_task_without_edges(self, store: ProjectGraphStore) -> None:
        assert store.get_dependencies("D") == []

    def test_unknown_task(self, store: ProjectGraphStore) -> None:
        with pytest.raises(TaskNotFoundError):
            store.get_dependencies("nope")


class TestTaskLifecycle:
    def test_remove_task_in_use(self, store: ProjectGraphStore) -> None:
        edge_id = store.add_dependency("A", "B")
        with pytest.raises(TaskInUseError) as excinfo:
            store.remove_task("A")
        assert excinfo.value.edge_ids == [edge_id]
        store.remove_dependency(edge_id)
        assert store.remove_task("A").task_id == "A"
        assert not store.snapshot().has_task("A")

    def test_update_task(self, store: ProjectGraphStore) -> None:
        store.add_dependency("A", "B")
        task = store.update_task("A", duration=7, status=TaskStatus.IN_PROGRESS)
        assert task.duration == 7
        assert store.snapshot().task("A").status is TaskStatus.IN_PROGRESS

    def test_update_pulls_from_directory(self, store: ProjectGraphStore) -> None:
        store.update_task("D", priority=4)
        assert store.snapshot().task("D").priority == 4

    def test_update_rejects_identity_fields(self, store: ProjectGraphStore) -> None:
        with pytest.raises(ValidationError):
            store.update_task("A", project_id="other")

    def test_update_rejects_bad_values(self, store: ProjectGraphStore) -> None:
        with pytest.raises(ValidationError):
            store.update_task("A", duration=-1)
        with pytest.raises(ValidationError):
            store.update_task("A", status="finished")
        with pytest.raises(ValidationError):
            store.update_task("A", window=(9, 3))
        assert store.version == 0

    def test_update_parses_status_and_window(self, store: ProjectGraphStore) -> None:
        task = store.update_task("A", status="completed", window=(0, 5))
        assert task.status is TaskStatus.COMPLETED
        assert store.snapshot().task("A").window == TimeWindow(0, 5)

    def test_register(self, store: ProjectGraphStore) -> None:
        store.register_task(Task("N", PROJECT, duration=4))
        assert store.snapshot().task("N").duration == 4
        assert store.version == 1

    def test_register_foreign(self, store: ProjectGraphStore) -> None:
        with pytest.raises(ValidationError):
            store.register_task(Task("N", "elsewhere"))


class TestTransaction:
    def test_nothing_staged(self, store: ProjectGraphStore) -> None:
        store.add_dependency("A", "B")
        with store.transaction() as txn:
            assert txn.base_version == 1
        assert store.version == 1

    def test_reads_inside_see_committed_state(self, store: ProjectGraphStore) -> None:
        edge_id = store.add_dependency("A", "B")
        with store.transaction() as txn:
            work = txn.working_copy()
            work.remove_edge(edge_id)
            txn.stage(work)
            assert store.version == 1
            assert len(store.snapshot().dependencies()) == 1
        assert store.snapshot().dependencies() == []

    def test_mutation_inside_raises(self, store: ProjectGraphStore) -> None:
        with store.transaction():
            with pytest.raises(RuntimeError):
                store.add_dependency("A", "B")
        assert store.version == 0

    def test_commit(self, store: ProjectGraphStore) -> None:
        edge_id = store.add_dependency("A", "B")
        with store.transaction() as txn:
            work = txn.working_copy()
            work.replace_edge(edge_id, dep_type=DependencyType.RELATED_TO)
            txn.stage(work, {"gpu": 2})
        snap = store.snapshot()
        assert snap.version == 2
        assert snap.dependency(edge_id).dep_type is DependencyType.RELATED_TO
        assert dict(snap.capacities) == {"gpu": 2}

    def test_exception_discards(self, store: ProjectGraphStore) -> None:
        edge_id = store.add_dependency("A", "B")
        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                work = txn.working_copy()
                work.remove_edge(edge_id)
                txn.stage(work)
                raise RuntimeError("abort")
        assert store.version == 1
        assert len(store.snapshot().dependencies()) == 1

    def test_invalid_stage_rejected(self, store: ProjectGraphStore) -> None:
        store.add_dependency("A", "B")
        with pytest.raises(ValidationError):
            with store.transaction() as txn:
                work = txn.working_copy()
                work.add_edge(work.index_of("B"), work.index_of("A"), DependencyType.DEPENDS_ON, 1.0)
                txn.stage(work)
        assert store.version == 1
        assert store.validate() == []


class TestFindIssues:
    def test_healthy(self, store: ProjectGraphStore) -> None:
        store.add_dependency("A", "B")
        assert store.validate() == []

    def test_reports_each_kind(self) -> None:
        g = DependencyGraph()
        a = g.add_task(Task("A", PROJECT))
        b = g.add_task(Task("B", PROJECT))
        g.add_task(Task("Z", "elsewhere"))
        g.add_edge(a, a, DependencyType.DEPENDS_ON, 1.0)
        g.add_edge(a, b, DependencyType.BLOCKS, 1.0)
        g.add_edge(a, b, DependencyType.BLOCKS, 0.5)
        g.add_edge(b, a, DependencyType.DEPENDS_ON, 1.0)
        kinds = sorted({i.kind for i in find_issues(g, PROJECT)})
        assert kinds == ["cycle", "duplicate_edge", "foreign_task", "self_loop"]

    def test_duplicate_names_both_edges(self) -> None:
        g = DependencyGraph()
        a = g.add_task(Task("A", PROJECT))
        b = g.add_task(Task("B", PROJECT))
        g.add_edge(a, b, DependencyType.PREREQUISITE, 1.0)
        g.add_edge(a, b, DependencyType.PREREQUISITE, 1.0)
        (issue,) = find_issues(g)
        assert issue.kind == "duplicate_edge"
        assert issue.edge_ids == (0, 1)

    def test_related_duplicates_are_fine(self) -> None:
        g = DependencyGraph()
        a = g.add_task(Task("A", PROJECT))
        b = g.add_task(Task("B", PROJECT))
        g.add_edge(a, b, DependencyType.RELATED_TO, 1.0)
        g.add_edge(b, a, DependencyType.RELATED_TO, 1.0)
        assert find_issues(g) == []
