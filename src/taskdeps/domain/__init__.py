"""Domain model for the task dependency engine.

Re-exports the public types:
    from taskdeps.domain import Task, TaskStatus, DependencyType
"""
from taskdeps.domain.dependency import Dependency, DependencyType, check_strength
from taskdeps.domain.errors import (
    AnalysisCancelledError,
    ConflictNotFoundError,
    CycleDetectedError,
    DependencyGraphError,
    DuplicateEdgeError,
    EdgeNotFoundError,
    InternalEngineError,
    InvalidDependencyError,
    NotAcyclicError,
    NotFoundError,
    ProjectNotFoundError,
    SelfLoopError,
    TaskInUseError,
    TaskNotFoundError,
    ValidationError,
)
from taskdeps.domain.task import Task, TaskPriority, TaskStatus, TimeWindow
from taskdeps.domain.types import ConflictId, EdgeId, ProjectId, TaskId, Timestamp

__all__ = [
    "Dependency",
    "DependencyType",
    "check_strength",
    "AnalysisCancelledError",
    "ConflictNotFoundError",
    "CycleDetectedError",
    "DependencyGraphError",
    "DuplicateEdgeError",
    "EdgeNotFoundError",
    "InternalEngineError",
    "InvalidDependencyError",
    "NotAcyclicError",
    "NotFoundError",
    "ProjectNotFoundError",
    "SelfLoopError",
    "TaskInUseError",
    "TaskNotFoundError",
    "ValidationError",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "TimeWindow",
    "ConflictId",
    "EdgeId",
    "ProjectId",
    "TaskId",
    "Timestamp",
]
