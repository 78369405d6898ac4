"""Canonical per-project dependency graph with invariant checks.

Every mutation follows the same copy-on-write shape:

    with self._lock.write():
        work = self._graph.copy()
        ... validate and mutate work ...
        self._commit(work)

If anything raises before _commit, the copy is dropped and the
committed graph is exactly what it was.  Nobody ever sees a half
written edge.  Readers take the read lock only long enough to grab
the committed graph reference (see snapshot()).

Invariants held by every committed graph:
  - no edge from a task to itself
  - at most one edge of each ordering type per ordered pair
  - no cycle among ordering edges
  - every edge endpoint is a live task of this project
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Mapping

from taskdeps.concurrency.cancellation import CancellationToken
from taskdeps.concurrency.project_lock import ProjectLock
from taskdeps.domain.dependency import Dependency, DependencyType, check_strength
from taskdeps.domain.errors import (
    CycleDetectedError,
    DuplicateEdgeError,
    SelfLoopError,
    TaskInUseError,
    TaskNotFoundError,
    ValidationError,
)
from taskdeps.domain.task import Task
from taskdeps.domain.types import EdgeId, ProjectId, TaskId
from taskdeps.graph.adjacency import DependencyGraph
from taskdeps.graph.critical_path import compute_critical_path
from taskdeps.graph.cycle_break import CycleBreaker, choose_cycle_break
from taskdeps.graph.cycle_detector import detect_cycle, find_cycles
from taskdeps.graph.queries import dependency_closure
from taskdeps.store.directory import TaskDirectory
from taskdeps.store.snapshot import DependencyRef, GraphSnapshot

log = logging.getLogger(__name__)

# attributes update_task() may change; identity fields are fixed
_MUTABLE_TASK_FIELDS = frozenset({"status", "duration", "priority", "resources", "window"})


@dataclass(slots=True, frozen=True)
class CycleAutoBroken:
    """Emitted after a forced add committed with one of its cycle edges demoted."""
    project_id: ProjectId
    edge_id: EdgeId
    from_task: TaskId
    to_task: TaskId
    previous_type: DependencyType
    cycle_path: tuple[TaskId, ...]
    trigger_edge: EdgeId


@dataclass(slots=True, frozen=True)
class GraphIssue:
    """One broken invariant found by validate()."""
    kind: str           # self_loop | duplicate_edge | cycle | dangling_edge | foreign_task
    message: str
    task_ids: tuple[TaskId, ...] = ()
    edge_ids: tuple[EdgeId, ...] = ()


Listener = Callable[[CycleAutoBroken], None]


class Transaction:
    """Staging area handed out by ProjectGraphStore.transaction().

    graph starts as the committed graph and must not be mutated in
    place.  Build changes on working_copy() and stage() the result;
    the store commits whatever is staged when the block exits cleanly.
    """

    __slots__ = ("_graph", "_capacities", "_staged", "base_version")

    def __init__(self, graph: DependencyGraph, capacities: Mapping[str, int], version: int) -> None:
        self._graph = graph
        self._capacities = dict(capacities)
        self._staged = False
        self.base_version = version

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    @property
    def capacities(self) -> Mapping[str, int]:
        return self._capacities

    @property
    def staged(self) -> bool:
        return self._staged

    def working_copy(self) -> DependencyGraph:
        return self._graph.copy()

    def stage(self, graph: DependencyGraph, capacities: Mapping[str, int] | None = None) -> None:
        self._graph = graph
        if capacities is not None:
            self._capacities = dict(capacities)
        self._staged = True


def find_issues(graph: DependencyGraph, project_id: ProjectId | None = None) -> list[GraphIssue]:
    """Check every stored invariant; empty list means healthy."""
    issues: list[GraphIssue] = []
    seen: dict[tuple[int, int, DependencyType], EdgeId] = {}
    for edge in graph.edges():
        try:
            src_id = graph.id_of(edge.src)
            dst_id = graph.id_of(edge.dst)
        except IndexError:
            issues.append(GraphIssue(
                "dangling_edge", f"Edge {edge.edge_id} points at a removed task",
                edge_ids=(edge.edge_id,),
            ))
            continue
        if edge.src == edge.dst:
            issues.append(GraphIssue(
                "self_loop", f"Edge {edge.edge_id} loops on {src_id!r}",
                (src_id,), (edge.edge_id,),
            ))
        if edge.is_ordering:
            key = (edge.src, edge.dst, edge.dep_type)
            if key in seen:
                issues.append(GraphIssue(
                    "duplicate_edge",
                    f"Duplicate {edge.dep_type.value} edge {src_id!r} -> {dst_id!r}",
                    (src_id, dst_id), (seen[key], edge.edge_id),
                ))
            else:
                seen[key] = edge.edge_id
    for cycle in find_cycles(graph):
        path = cycle.cycle_path or []
        issues.append(GraphIssue(
            "cycle", "Cycle: " + " -> ".join(path), tuple(path),
        ))
    if project_id is not None:
        for task in graph.tasks():
            if task.project_id != project_id:
                issues.append(GraphIssue(
                    "foreign_task",
                    f"Task {task.task_id!r} belongs to project {task.project_id!r}",
                    (task.task_id,),
                ))
    return issues


class ProjectGraphStore:
    """Owns one project's tasks and dependency edges.

    Args:
        project_id: the project every stored task must belong to
        directory: where unknown task ids are looked up
        capacities: initial per-resource-tag capacity overrides
        cycle_breaker: picks the edge to demote on a forced add
    """

    def __init__(
        self,
        project_id: ProjectId,
        directory: TaskDirectory,
        capacities: Mapping[str, int] | None = None,
        cycle_breaker: CycleBreaker = choose_cycle_break,
    ) -> None:
        self._project_id = project_id
        self._directory = directory
        self._cycle_breaker = cycle_breaker
        self._lock = ProjectLock(project_id)
        self._graph = DependencyGraph()
        self._capacities: dict[str, int] = dict(capacities or {})
        self._version = 0
        self._listeners: list[Listener] = []
        self._listeners_lock = threading.Lock()

    @property
    def project_id(self) -> ProjectId:
        return self._project_id

    @property
    def version(self) -> int:
        with self._lock.read():
            return self._version

    # ---- reads -----------------------------------------------------------

    def snapshot(self) -> GraphSnapshot:
        """Versioned, immutable view of the committed graph."""
        with self._lock.read():
            return GraphSnapshot(
                self._project_id, self._version, self._graph, self._capacities
            )

    def get_dependencies(
        self,
        task_id: TaskId,
        include_transitive: bool = False,
        cancel: CancellationToken | None = None,
    ) -> list[DependencyRef]:
        """Edges *task_id* depends on, direct ones at depth 1."""
        graph = self.snapshot().graph
        if not graph.has_task(task_id):
            # a known task with no edges yet has no dependencies
            self._directory.require(task_id)
            return []
        reached = dependency_closure(
            graph, graph.index_of(task_id), include_transitive, cancel
        )
        return [DependencyRef(graph.to_dependency(r.edge), r.depth) for r in reached]

    def validate(self) -> list[GraphIssue]:
        return find_issues(self.snapshot().graph, self._project_id)

    # ---- edge mutations --------------------------------------------------

    def add_dependency(
        self,
        from_task: TaskId,
        to_task: TaskId,
        dep_type: DependencyType | str = DependencyType.DEPENDS_ON,
        strength: float = 1.0,
        force: bool = False,
    ) -> EdgeId:
        """Add from_task -> to_task (from precedes to) and return its id.

        With force=True an edge that closes a cycle is still added, and
        the cycle breaker demotes edges to related_to until the graph is
        acyclic again.  A CycleAutoBroken event is emitted per demotion
        once the change is committed.
        """
        dep_type = DependencyType.parse(dep_type)
        strength = check_strength(strength)
        if from_task == to_task:
            log.warning("Rejected self loop on %s in project %s", from_task, self._project_id)
            raise SelfLoopError(from_task)

        events: list[CycleAutoBroken] = []
        with self._lock.write():
            work = self._graph.copy()
            src = self._ensure_task(work, from_task)
            dst = self._ensure_task(work, to_task)
            self._check_duplicate(work, src, dst, dep_type)

            cycle = None
            if dep_type.is_ordering:
                found = detect_cycle(work, (src, dst))
                if found.has_cycle:
                    if not force:
                        log.warning(
                            "Rejected %s -> %s in project %s: cycle %s",
                            from_task, to_task, self._project_id, found.cycle_path,
                        )
                        raise CycleDetectedError(found.cycle_path or [])
                    cycle = found.node_path

            edge_id = work.add_edge(src, dst, dep_type, strength)
            if cycle is not None:
                events = self._break_cycles(work, cycle, edge_id)
            self._commit(work)

        self._emit(events)
        return edge_id

    def remove_dependency(self, edge_id: EdgeId) -> Dependency:
        with self._lock.write():
            work = self._graph.copy()
            dep = work.to_dependency(work.edge(edge_id))
            work.remove_edge(edge_id)
            self._commit(work)
        log.info("Removed dependency %s (%s -> %s)", edge_id, dep.from_task, dep.to_task)
        return dep

    def update_dependency(
        self,
        edge_id: EdgeId,
        dep_type: DependencyType | str | None = None,
        strength: float | None = None,
    ) -> Dependency:
        """Change an edge's type and/or strength.  Endpoints never change."""
        new_type = None if dep_type is None else DependencyType.parse(dep_type)
        new_strength = None if strength is None else check_strength(strength)

        with self._lock.write():
            work = self._graph.copy()
            edge = work.edge(edge_id)
            if new_type is not None and new_type is not edge.dep_type:
                self._check_duplicate(work, edge.src, edge.dst, new_type)
                if new_type.is_ordering and not edge.is_ordering:
                    # the edge is not traversed yet, so test it as a candidate
                    found = detect_cycle(work, (edge.src, edge.dst))
                    if found.has_cycle:
                        log.warning(
                            "Rejected update of edge %s to %s: cycle %s",
                            edge_id, new_type.value, found.cycle_path,
                        )
                        raise CycleDetectedError(found.cycle_path or [])
            updated = work.replace_edge(edge_id, new_type, new_strength)
            self._commit(work)
            return work.to_dependency(updated)

    # ---- task lifecycle --------------------------------------------------

    def register_task(self, task: Task) -> None:
        """Insert or refresh the engine's copy of *task*."""
        self._check_project(task)
        with self._lock.write():
            work = self._graph.copy()
            work.add_task(task)
            self._commit(work)

    def update_task(self, task_id: TaskId, **changes: object) -> Task:
        unknown = set(changes) - _MUTABLE_TASK_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update task field(s): {sorted(unknown)}")
        with self._lock.write():
            work = self._graph.copy()
            self._ensure_task(work, task_id)
            try:
                task = work.task(task_id).with_changes(**changes)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid update for task {task_id!r}: {exc}") from exc
            work.replace_task(task)
            self._commit(work)
            return task

    def remove_task(self, task_id: TaskId) -> Task:
        with self._lock.write():
            work = self._graph.copy()
            idx = work.index_of(task_id)
            in_use = work.incident_edge_ids(idx)
            if in_use:
                raise TaskInUseError(task_id, sorted(in_use))
            task = work.remove_task(task_id)
            self._commit(work)
        log.info("Removed task %s from project %s", task_id, self._project_id)
        return task

    # ---- transactions ----------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Hold the write lock and commit whatever the block stages.

        An exception inside the block discards the staged state.  The
        staged graph is re-validated before commit; a violation raises
        ValidationError and nothing is written.
        """
        with self._lock.write():
            txn = Transaction(self._graph, self._capacities, self._version)
            yield txn
            if not txn.staged:
                return
            issues = find_issues(txn.graph, self._project_id)
            if issues:
                raise ValidationError(
                    "Transaction would break graph invariants: "
                    + "; ".join(i.message for i in issues)
                )
            self._capacities = dict(txn.capacities)
            self._commit(txn.graph)

    # ---- events ----------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ---- internals -------------------------------------------------------

    def _commit(self, graph: DependencyGraph) -> None:
        # caller holds the write lock
        self._graph = graph
        self._version += 1

    def _emit(self, events: list[CycleAutoBroken]) -> None:
        if not events:
            return
        with self._listeners_lock:
            listeners = list(self._listeners)
        for event in events:
            for listener in listeners:
                try:
                    listener(event)
                except Exception:
                    log.exception("Listener %r failed on %s", listener, event)

    def _check_project(self, task: Task) -> None:
        if task.project_id != self._project_id:
            raise ValidationError(
                f"Task {task.task_id!r} belongs to project {task.project_id!r}, "
                f"not {self._project_id!r}"
            )

    def _ensure_task(self, work: DependencyGraph, task_id: TaskId) -> int:
        """Slot of *task_id*, pulling it from the directory on first use."""
        if work.has_task(task_id):
            return work.index_of(task_id)
        task = self._directory.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        self._check_project(task)
        return work.add_task(task)

    def _check_duplicate(
        self, work: DependencyGraph, src: int, dst: int, dep_type: DependencyType
    ) -> None:
        if not dep_type.is_ordering:
            return
        existing = work.find_edge(src, dst, dep_type)
        if existing is not None:
            raise DuplicateEdgeError(
                work.id_of(src), work.id_of(dst), dep_type.value, existing.edge_id
            )

    def _break_cycles(
        self, work: DependencyGraph, cycle: list[int], new_edge: EdgeId
    ) -> list[CycleAutoBroken]:
        # critical edges of the graph as it was before the forced edge
        critical = compute_critical_path(self._graph).critical_edges
        events: list[CycleAutoBroken] = []
        while cycle:
            victim = self._cycle_breaker(work, cycle, new_edge, critical)
            work.replace_edge(victim.edge_id, dep_type=DependencyType.RELATED_TO)
            event = CycleAutoBroken(
                project_id=self._project_id,
                edge_id=victim.edge_id,
                from_task=work.id_of(victim.src),
                to_task=work.id_of(victim.dst),
                previous_type=victim.dep_type,
                cycle_path=tuple(work.id_of(n) for n in cycle),
                trigger_edge=new_edge,
            )
            log.info(
                "Auto-broke cycle %s in project %s: demoted edge %s (%s -> %s) to related_to",
                list(event.cycle_path), self._project_id, victim.edge_id,
                event.from_task, event.to_task,
            )
            events.append(event)
            found = detect_cycle(work)
            cycle = found.node_path if found.has_cycle else None
        return events

    def __repr__(self) -> str:
        return f"ProjectGraphStore(project={self._project_id!r}, version={self._version})"
