"""Conflict records, resolution strategies and the actions they apply.

The set of conflict kinds is closed.  Each kind has a fixed list of
strategies (STRATEGIES) and the detector builds candidates for them
with one exhaustive if/elif per kind; a new kind means a new enum
member, a new STRATEGIES entry and a new branch, never a plug-in.

A Candidate is a concrete, pre-computed list of actions.  Applying it
never re-derives anything from the graph, so a candidate that was
checked for safety is exactly what gets committed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from taskdeps.domain.task import TaskPriority, TimeWindow
from taskdeps.domain.types import ConflictId, EdgeId, TaskId


class ConflictKind(Enum):
    DEPENDENCY = "dependency"
    SCHEDULING = "scheduling"
    RESOURCE = "resource"
    PRIORITY = "priority"


class ResolutionStrategy(Enum):
    # dependency
    DEMOTE_EDGE = "demote_edge"
    RESCHEDULE = "reschedule"
    MERGE_TASKS = "merge_tasks"
    # scheduling
    SHIFT_DEPENDENT = "shift_dependent"
    ALLOW_PARALLEL = "allow_parallel"
    EXTEND_TIMELINE = "extend_timeline"
    # resource
    REASSIGN_RESOURCE = "reassign_resource"
    ADD_RESOURCE = "add_resource"
    RESCHEDULE_TASKS = "reschedule_tasks"
    # priority (also ALLOW_PARALLEL)
    INVERT_PRIORITY = "invert_priority"
    BREAK_DEPENDENCY = "break_dependency"


# candidate order per kind; auto-resolve tries them in this order
STRATEGIES: dict[ConflictKind, tuple[ResolutionStrategy, ...]] = {
    ConflictKind.DEPENDENCY: (
        ResolutionStrategy.DEMOTE_EDGE,
        ResolutionStrategy.RESCHEDULE,
        ResolutionStrategy.MERGE_TASKS,
    ),
    ConflictKind.SCHEDULING: (
        ResolutionStrategy.SHIFT_DEPENDENT,
        ResolutionStrategy.ALLOW_PARALLEL,
        ResolutionStrategy.EXTEND_TIMELINE,
    ),
    ConflictKind.RESOURCE: (
        ResolutionStrategy.REASSIGN_RESOURCE,
        ResolutionStrategy.ADD_RESOURCE,
        ResolutionStrategy.RESCHEDULE_TASKS,
    ),
    ConflictKind.PRIORITY: (
        ResolutionStrategy.INVERT_PRIORITY,
        ResolutionStrategy.BREAK_DEPENDENCY,
        ResolutionStrategy.ALLOW_PARALLEL,
    ),
}


# ---- actions -------------------------------------------------------------

@dataclass(slots=True, frozen=True)
class DemoteEdge:
    """Turn an ordering edge into related_to."""
    edge_id: EdgeId


@dataclass(slots=True, frozen=True)
class RemoveEdge:
    edge_id: EdgeId


@dataclass(slots=True, frozen=True)
class ShiftWindow:
    task_id: TaskId
    window: TimeWindow


@dataclass(slots=True, frozen=True)
class SetPriority:
    task_id: TaskId
    priority: TaskPriority


@dataclass(slots=True, frozen=True)
class ReassignResource:
    task_id: TaskId
    old_tag: str
    new_tag: str


@dataclass(slots=True, frozen=True)
class AddCapacity:
    tag: str
    capacity: int


@dataclass(slots=True, frozen=True)
class MergeTasks:
    """Fold *absorbed* into *keep*.  Needs a human: never auto-applied."""
    keep: TaskId
    absorbed: tuple[TaskId, ...]


Action = Union[DemoteEdge, RemoveEdge, ShiftWindow, SetPriority, ReassignResource, AddCapacity, MergeTasks]


# ---- conflicts -----------------------------------------------------------

@dataclass(slots=True, frozen=True)
class Candidate:
    strategy: ResolutionStrategy
    actions: tuple[Action, ...]
    description: str
    auto_applicable: bool = True


@dataclass(slots=True, frozen=True)
class Conflict:
    """A detected inconsistency.  Derived on demand, never stored.

    conflict_id is a digest of kind and involved ids, so the same
    inconsistency gets the same id across detections.
    """
    conflict_id: ConflictId
    kind: ConflictKind
    task_ids: tuple[TaskId, ...]
    edge_ids: tuple[EdgeId, ...]
    severity: float
    description: str
    candidates: tuple[Candidate, ...] = ()
    resource: str | None = None

    def candidate(self, strategy: ResolutionStrategy) -> Candidate | None:
        for cand in self.candidates:
            if cand.strategy is strategy:
                return cand
        return None


class ResolutionStatus(Enum):
    APPLIED = "applied"
    NO_SAFE_RESOLUTION = "no_safe_resolution"
    MANUAL_ACTION_REQUIRED = "manual_action_required"
    SUPERSEDED = "superseded"       # gone after an earlier resolution in the batch


@dataclass(slots=True, frozen=True)
class ResolutionResult:
    conflict_id: ConflictId
    status: ResolutionStatus
    strategy: ResolutionStrategy | None = None
    actions: tuple[Action, ...] = ()
    reason: str = ""
    version: int | None = None
    rejected: tuple[tuple[ResolutionStrategy, str], ...] = field(default=())

    @property
    def applied(self) -> bool:
        return self.status is ResolutionStatus.APPLIED
