"""Per-project graph storage and the collaborator contracts it consumes."""

from taskdeps.store.directory import Clock, InMemoryTaskDirectory, TaskDirectory, system_clock
from taskdeps.store.graph_store import (
    CycleAutoBroken,
    GraphIssue,
    ProjectGraphStore,
    Transaction,
    find_issues,
)
from taskdeps.store.snapshot import DependencyRef, DependencyStatistics, GraphSnapshot

__all__ = [
    "Clock",
    "CycleAutoBroken",
    "DependencyRef",
    "DependencyStatistics",
    "GraphIssue",
    "GraphSnapshot",
    "InMemoryTaskDirectory",
    "ProjectGraphStore",
    "TaskDirectory",
    "Transaction",
    "find_issues",
    "system_clock",
]
