"""Public entry point: one engine instance, many project graphs.

There is no module-level state.  Callers construct a DependencyEngine
with the collaborators it needs (task directory, clock, config) and
keep it; tests build as many isolated engines as they like.

Each project gets its own ProjectGraphStore (and read-write lock) the
first time one of its tasks is touched, so mutations in one project
never wait on another.  Analyses take a snapshot and run lock-free.

Usage:
    directory = InMemoryTaskDirectory([Task("a", "p", duration=3), ...])
    engine = DependencyEngine(directory)
    engine.add_dependency("a", "b")
    cp = engine.compute_critical_path("p")
    report = engine.analyze_impact("a", ImpactChange.delayed(2))

Edge ids are allocated per project, so operations that take an edge
id also take the project id.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Collection, Mapping

from taskdeps.concurrency.cancellation import CancellationToken
from taskdeps.config import EngineConfig
from taskdeps.conflicts.models import Conflict, ResolutionResult, ResolutionStrategy
from taskdeps.conflicts.resolver import ConflictResolver
from taskdeps.domain.dependency import Dependency, DependencyType
from taskdeps.domain.errors import (
    InternalEngineError,
    NotAcyclicError,
    ProjectNotFoundError,
    TaskNotFoundError,
    ValidationError,
)
from taskdeps.domain.task import Task
from taskdeps.domain.types import ConflictId, EdgeId, ProjectId, TaskId
from taskdeps.export import export_graph, to_csv, to_json
from taskdeps.graph.critical_path import CriticalPathResult, compute_critical_path
from taskdeps.graph.queries import redundant_edges, shortest_path
from taskdeps.impact.analyzer import ImpactChange, ImpactReport, analyze_impact
from taskdeps.store.directory import Clock, TaskDirectory, system_clock
from taskdeps.store.graph_store import GraphIssue, Listener, ProjectGraphStore
from taskdeps.store.snapshot import DependencyRef, DependencyStatistics, GraphSnapshot

log = logging.getLogger(__name__)

EXPORT_FORMATS = ("dict", "json", "csv")


@dataclass(slots=True)
class OptimizationReport:
    """Outcome of DependencyEngine.optimize()."""
    project_id: ProjectId
    demoted_edges: list[EdgeId] = field(default_factory=list)
    resolutions: list[ResolutionResult] = field(default_factory=list)
    version_before: int = 0
    version_after: int = 0

    @property
    def resolved(self) -> int:
        return sum(1 for r in self.resolutions if r.applied)

    @property
    def unresolved(self) -> int:
        return sum(1 for r in self.resolutions if not r.applied)


class _Project:
    __slots__ = ("store", "resolver")

    def __init__(self, store: ProjectGraphStore, resolver: ConflictResolver) -> None:
        self.store = store
        self.resolver = resolver


class DependencyEngine:
    """Task dependency engine holding one graph per project.

    Args:
        directory: lookup for externally managed tasks
        clock: time source for window checks (default: time.time)
        config: impact and resolver settings
    """

    def __init__(
        self,
        directory: TaskDirectory,
        clock: Clock = system_clock,
        config: EngineConfig | None = None,
    ) -> None:
        self._directory = directory
        self._clock = clock
        self._config = config or EngineConfig()
        self._projects: dict[ProjectId, _Project] = {}
        self._registry_lock = threading.Lock()

    @property
    def config(self) -> EngineConfig:
        return self._config

    def projects(self) -> list[ProjectId]:
        with self._registry_lock:
            return sorted(self._projects)

    def store(self, project_id: ProjectId) -> ProjectGraphStore:
        return self._project(project_id).store

    # ---- graph store operations -----------------------------------------

    def add_dependency(
        self,
        from_task: TaskId,
        to_task: TaskId,
        dep_type: DependencyType | str = DependencyType.DEPENDS_ON,
        strength: float = 1.0,
        force: bool = False,
    ) -> EdgeId:
        """from_task must finish before to_task starts.  Returns the edge id."""
        store = self._store_for_task(from_task)
        return store.add_dependency(from_task, to_task, dep_type, strength, force)

    def remove_dependency(self, project_id: ProjectId, edge_id: EdgeId) -> Dependency:
        return self._project(project_id).store.remove_dependency(edge_id)

    def update_dependency(
        self,
        project_id: ProjectId,
        edge_id: EdgeId,
        dep_type: DependencyType | str | None = None,
        strength: float | None = None,
    ) -> Dependency:
        return self._project(project_id).store.update_dependency(edge_id, dep_type, strength)

    def get_dependencies(
        self,
        task_id: TaskId,
        include_transitive: bool = False,
        cancel: CancellationToken | None = None,
    ) -> list[DependencyRef]:
        store = self._store_for_task(task_id)
        return store.get_dependencies(task_id, include_transitive, cancel)

    def snapshot(self, project_id: ProjectId) -> GraphSnapshot:
        return self._project(project_id).store.snapshot()

    def subscribe(self, project_id: ProjectId, listener: Listener) -> None:
        self._open(project_id).store.subscribe(listener)

    # ---- task lifecycle --------------------------------------------------

    def register_task(self, task: Task) -> None:
        self._open(task.project_id).store.register_task(task)

    def update_task(self, task_id: TaskId, **changes: Any) -> Task:
        return self._store_for_task(task_id).update_task(task_id, **changes)

    def remove_task(self, task_id: TaskId) -> Task:
        return self._store_for_task(task_id).remove_task(task_id)

    # ---- analyses --------------------------------------------------------

    def compute_critical_path(
        self,
        project_id: ProjectId,
        cancel: CancellationToken | None = None,
        overrides: Mapping[TaskId, float] | None = None,
    ) -> CriticalPathResult:
        return self._critical(self.snapshot(project_id), cancel, overrides)

    def detect_conflicts(
        self, project_id: ProjectId, task_ids: Collection[TaskId] | None = None
    ) -> list[Conflict]:
        return self._project(project_id).resolver.detect(task_ids)

    def resolve(
        self,
        project_id: ProjectId,
        conflict_id: ConflictId,
        strategy: ResolutionStrategy | str | None = None,
        allow_critical_changes: bool | None = None,
    ) -> ResolutionResult:
        resolver = self._project(project_id).resolver
        return resolver.resolve(conflict_id, strategy, allow_critical_changes)

    def auto_resolve(
        self,
        project_id: ProjectId,
        conflict_ids: Collection[ConflictId] | None = None,
        allow_critical_changes: bool | None = None,
    ) -> list[ResolutionResult]:
        resolver = self._project(project_id).resolver
        return resolver.auto_resolve(conflict_ids, allow_critical_changes)

    def analyze_impact(
        self,
        task_id: TaskId,
        change: ImpactChange | str,
        delay: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> ImpactReport:
        """Downstream effect of completing, delaying or cancelling *task_id*."""
        change = ImpactChange.parse(change, delay)
        snap = self._store_for_task(task_id).snapshot()
        if not snap.has_task(task_id):
            # known to the directory but not linked to anything yet
            return ImpactReport(origin=task_id, change=change)
        baseline = self._critical(snap, cancel)
        return analyze_impact(snap, task_id, change, self._config.impact, cancel, baseline)

    def export_graph(self, project_id: ProjectId, format: str = "dict") -> dict[str, Any] | str:
        if format not in EXPORT_FORMATS:
            raise ValidationError(
                f"Unknown export format {format!r}; expected one of {', '.join(EXPORT_FORMATS)}"
            )
        snap = self.snapshot(project_id)
        exported = export_graph(snap, self._critical(snap))
        if format == "json":
            return to_json(exported)
        if format == "csv":
            return to_csv(exported)
        return exported

    def statistics(self, project_id: ProjectId) -> DependencyStatistics:
        return self.snapshot(project_id).statistics()

    def validate(self, project_id: ProjectId) -> list[GraphIssue]:
        issues = self._project(project_id).store.validate()
        for issue in issues:
            log.error("Project %s invariant broken: %s", project_id, issue.message)
        return issues

    def find_path(
        self,
        from_task: TaskId,
        to_task: TaskId,
        cancel: CancellationToken | None = None,
    ) -> list[TaskId] | None:
        """Fewest-hops ordering path from_task -> ... -> to_task."""
        store = self._store_for_task(from_task)
        if self._store_for_task(to_task) is not store:
            return None
        snap = store.snapshot()
        graph = snap.graph
        if not (graph.has_task(from_task) and graph.has_task(to_task)):
            return [from_task] if from_task == to_task else None
        path = shortest_path(graph, graph.index_of(from_task), graph.index_of(to_task), cancel)
        return None if path is None else [graph.id_of(n) for n in path]

    def optimize(
        self, project_id: ProjectId, cancel: CancellationToken | None = None
    ) -> OptimizationReport:
        """Demote redundant ordering edges, then auto-resolve conflicts.

        Redundant edges are implied by longer ordering paths, so demoting
        them changes neither reachability nor the critical path.
        """
        project = self._project(project_id)
        report = OptimizationReport(project_id, version_before=project.store.version)

        with project.store.transaction() as txn:
            redundant = redundant_edges(txn.graph, cancel)
            if redundant:
                work = txn.working_copy()
                for edge_id in redundant:
                    work.replace_edge(edge_id, dep_type=DependencyType.RELATED_TO)
                txn.stage(work)
        report.demoted_edges = redundant

        report.resolutions = project.resolver.auto_resolve()
        report.version_after = project.store.version
        log.info(
            "Optimized project %s: demoted %d redundant edge(s), resolved %d of %d conflict(s)",
            project_id, len(redundant), report.resolved, len(report.resolutions),
        )
        return report

    # ---- internals -------------------------------------------------------

    def _project(self, project_id: ProjectId) -> _Project:
        with self._registry_lock:
            project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def _open(self, project_id: ProjectId) -> _Project:
        with self._registry_lock:
            project = self._projects.get(project_id)
            if project is None:
                store = ProjectGraphStore(
                    project_id,
                    self._directory,
                    cycle_breaker=ConflictResolver.choose_cycle_break,
                )
                resolver = ConflictResolver(store, self._config.resolver, self._clock)
                project = self._projects[project_id] = _Project(store, resolver)
            return project

    def _store_for_task(self, task_id: TaskId) -> ProjectGraphStore:
        task = self._directory.get_task(task_id)
        if task is not None:
            return self._open(task.project_id).store
        # registered directly, never published to the directory
        with self._registry_lock:
            projects = list(self._projects.values())
        for project in projects:
            if project.store.snapshot().has_task(task_id):
                return project.store
        raise TaskNotFoundError(task_id)

    def _critical(
        self,
        snap: GraphSnapshot,
        cancel: CancellationToken | None = None,
        overrides: Mapping[TaskId, float] | None = None,
    ) -> CriticalPathResult:
        try:
            return compute_critical_path(snap.graph, cancel, overrides)
        except NotAcyclicError as exc:
            log.exception(
                "Stored graph for project %s (version %d) is cyclic",
                snap.project_id, snap.version,
            )
            raise InternalEngineError(
                f"Critical path analysis failed for project {snap.project_id!r}"
            ) from exc
