"""Immutable, versioned views of a project graph.

The store never mutates a committed DependencyGraph: every mutation
works on a copy and swaps it in.  A snapshot is therefore just a
pointer to the committed graph plus the version it was taken at, and
taking one costs nothing beyond the brief read lock.  Analyses run on
snapshots with no lock held, so a concurrent mutation cannot corrupt
an analysis in flight.

Callers must treat snapshot.graph as read-only.  Code that needs to
try changes (the conflict resolver) calls working_copy().
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping

from taskdeps.domain.dependency import Dependency, DependencyType
from taskdeps.domain.task import Task
from taskdeps.domain.types import EdgeId, ProjectId, TaskId
from taskdeps.graph.adjacency import DependencyGraph


@dataclass(slots=True, frozen=True)
class DependencyRef:
    """One entry of a GetDependencies answer."""
    dependency: Dependency
    depth: int

    @property
    def direct(self) -> bool:
        return self.depth == 1


@dataclass(slots=True, frozen=True)
class DependencyStatistics:
    total_tasks: int
    total_dependencies: int
    ordering_dependencies: int
    by_type: dict[str, int]
    strength_distribution: dict[str, int]   # low <= 0.3 < medium <= 0.7 < high
    average_dependencies_per_task: float


class GraphSnapshot:
    """Read-only view of one project graph at one version."""

    __slots__ = ("_project_id", "_version", "_graph", "_capacities")

    def __init__(
        self,
        project_id: ProjectId,
        version: int,
        graph: DependencyGraph,
        capacities: Mapping[str, int] | None = None,
    ) -> None:
        self._project_id = project_id
        self._version = version
        self._graph = graph
        self._capacities = MappingProxyType(dict(capacities or {}))

    @property
    def project_id(self) -> ProjectId:
        return self._project_id

    @property
    def version(self) -> int:
        return self._version

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    @property
    def capacities(self) -> Mapping[str, int]:
        """Per-tag capacity overrides recorded in the store."""
        return self._capacities

    def working_copy(self) -> DependencyGraph:
        return self._graph.copy()

    # ---- task / edge lookups --------------------------------------------

    def has_task(self, task_id: TaskId) -> bool:
        return self._graph.has_task(task_id)

    def task(self, task_id: TaskId) -> Task:
        return self._graph.task(task_id)

    def tasks(self) -> Iterator[Task]:
        return self._graph.tasks()

    def dependency(self, edge_id: EdgeId) -> Dependency:
        return self._graph.to_dependency(self._graph.edge(edge_id))

    def dependencies(self, ordering_only: bool = False) -> list[Dependency]:
        return [
            self._graph.to_dependency(e)
            for e in self._graph.edges(ordering_only=ordering_only)
        ]

    def statistics(self) -> DependencyStatistics:
        deps = self.dependencies()
        by_type = Counter(d.dep_type.value for d in deps)
        strength = {"low": 0, "medium": 0, "high": 0}
        for dep in deps:
            if dep.strength <= 0.3:
                strength["low"] += 1
            elif dep.strength <= 0.7:
                strength["medium"] += 1
            else:
                strength["high"] += 1
        n_tasks = self._graph.node_count
        return DependencyStatistics(
            total_tasks=n_tasks,
            total_dependencies=len(deps),
            ordering_dependencies=sum(1 for d in deps if d.is_ordering),
            by_type={t.value: by_type.get(t.value, 0) for t in DependencyType},
            strength_distribution=strength,
            average_dependencies_per_task=len(deps) / n_tasks if n_tasks else 0.0,
        )

    def __repr__(self) -> str:
        return (
            f"GraphSnapshot(project={self._project_id!r}, version={self._version}, "
            f"tasks={self._graph.node_count}, edges={self._graph.edge_count})"
        )
