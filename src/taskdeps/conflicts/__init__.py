"""Conflict detection and resolution over project dependency graphs."""

from taskdeps.conflicts.detector import conflict_id, detect_conflicts
from taskdeps.conflicts.models import (
    STRATEGIES,
    Action,
    AddCapacity,
    Candidate,
    Conflict,
    ConflictKind,
    DemoteEdge,
    MergeTasks,
    ReassignResource,
    RemoveEdge,
    ResolutionResult,
    ResolutionStatus,
    ResolutionStrategy,
    SetPriority,
    ShiftWindow,
)
from taskdeps.conflicts.resolver import ConflictResolver, apply_actions

__all__ = [
    "STRATEGIES",
    "Action",
    "AddCapacity",
    "Candidate",
    "Conflict",
    "ConflictKind",
    "ConflictResolver",
    "DemoteEdge",
    "MergeTasks",
    "ReassignResource",
    "RemoveEdge",
    "ResolutionResult",
    "ResolutionStatus",
    "ResolutionStrategy",
    "SetPriority",
    "ShiftWindow",
    "apply_actions",
    "conflict_id",
    "detect_conflicts",
]
