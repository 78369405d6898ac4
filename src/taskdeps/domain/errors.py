"""Exception taxonomy for the dependency engine.

Validation errors (self loops, duplicates, bad strengths) are rejected
before anything is written.  CycleDetectedError carries the offending
path so the caller can retry with force=True or give up.  NotAcyclicError
is an internal invariant violation: a stored graph should never be
cyclic, so seeing one means a bug somewhere else.

"No safe resolution" is deliberately absent here.  It is a normal
outcome of conflict resolution and is reported on ResolutionResult.
"""
from __future__ import annotations


class DependencyGraphError(Exception):
    """Base class for every error raised by the engine."""


# ---- validation ----------------------------------------------------------

class ValidationError(DependencyGraphError):
    """A request was rejected before touching the graph."""


class SelfLoopError(ValidationError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id!r} cannot depend on itself")


class DuplicateEdgeError(ValidationError):
    def __init__(self, from_task: str, to_task: str, dep_type: str, existing_id: int) -> None:
        self.from_task = from_task
        self.to_task = to_task
        self.dep_type = dep_type
        self.existing_id = existing_id
        super().__init__(
            f"{dep_type} edge {from_task!r} -> {to_task!r} already exists "
            f"(edge {existing_id})"
        )


class InvalidDependencyError(ValidationError):
    """Bad strength, unknown type, or similar malformed input."""


class TaskInUseError(ValidationError):
    def __init__(self, task_id: str, edge_ids: list[int]) -> None:
        self.task_id = task_id
        self.edge_ids = edge_ids
        super().__init__(
            f"Task {task_id!r} is still referenced by {len(edge_ids)} edge(s)"
        )


# ---- structural ----------------------------------------------------------

class CycleDetectedError(DependencyGraphError):
    """Adding the edge would close a cycle among ordering edges."""

    def __init__(self, cycle_path: list[str]) -> None:
        self.cycle_path = cycle_path
        super().__init__("Cycle detected: " + " -> ".join(cycle_path))


# ---- not found -----------------------------------------------------------

class NotFoundError(DependencyGraphError, KeyError):
    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id!r} not found")


class EdgeNotFoundError(NotFoundError):
    def __init__(self, edge_id: int) -> None:
        self.edge_id = edge_id
        super().__init__(f"Dependency edge {edge_id} not found")


class ProjectNotFoundError(NotFoundError):
    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        super().__init__(f"Project {project_id!r} not found")


class ConflictNotFoundError(NotFoundError):
    def __init__(self, conflict_id: str) -> None:
        self.conflict_id = conflict_id
        super().__init__(f"Conflict {conflict_id!r} not found (stale id?)")


# ---- internal / cancellation --------------------------------------------

class NotAcyclicError(DependencyGraphError):
    """Topological sort found a cycle in a graph that must be a DAG."""

    def __init__(self, remaining_tasks: list[str]) -> None:
        self.remaining_tasks = remaining_tasks
        super().__init__(
            f"Graph is not acyclic: {len(remaining_tasks)} task(s) involved "
            f"in circular dependencies"
        )


class InternalEngineError(DependencyGraphError):
    """Generic error surfaced to callers when an internal invariant breaks."""


class AnalysisCancelledError(DependencyGraphError):
    """The caller cancelled a running analysis."""
