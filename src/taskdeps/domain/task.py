"""Task entity -- a node in a project's dependency graph.

Tasks are created by an external task-management system; the engine
keeps its own copy of the attributes it schedules against:
  - status and estimated duration (critical path, impact)
  - priority (priority conflicts)
  - resource tags and an optional planned window (resource and
    scheduling conflicts)
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum

from taskdeps.domain.types import ProjectId, TaskId, Timestamp


class TaskStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"

    @property
    def is_closed(self) -> bool:
        """Completed and cancelled tasks no longer compete for time or resources."""
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


class TaskPriority(IntEnum):
    """Higher value = more important."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


@dataclass(slots=True, frozen=True)
class TimeWindow:
    """Planned [start, end) interval on the injected clock's scale."""
    start: Timestamp
    end: Timestamp

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(
                f"TimeWindow end ({self.end}) must not precede start ({self.start})"
            )

    @property
    def length(self) -> float:
        return self.end - self.start

    def overlaps(self, other: TimeWindow) -> bool:
        """Half-open overlap: touching windows do not overlap."""
        return self.start < other.end and other.start < self.end

    def overlap(self, other: TimeWindow) -> float:
        """Length of the shared interval (0.0 if disjoint)."""
        return max(0.0, min(self.end, other.end) - max(self.start, other.start))

    def contains(self, instant: Timestamp) -> bool:
        return self.start <= instant < self.end

    def shifted_to(self, new_start: Timestamp) -> TimeWindow:
        """Same length, starting at *new_start*."""
        return TimeWindow(new_start, new_start + self.length)

    def shifted_by(self, delta: float) -> TimeWindow:
        return TimeWindow(self.start + delta, self.end + delta)


@dataclass(slots=True, frozen=True)
class Task:
    """Engine-side view of a task.

    Frozen so that snapshots can share Task objects with the live store;
    updates go through with_changes() and replace the stored instance.
    """
    task_id: TaskId
    project_id: ProjectId
    duration: float = 0.0
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    resources: frozenset[str] = field(default_factory=frozenset)
    window: TimeWindow | None = None

    def __post_init__(self) -> None:
        if not self.task_id:
            raise ValueError("task_id must be a non-empty string")
        if self.duration < 0:
            raise ValueError(f"duration must be >= 0, got {self.duration}")
        # accept plain strings/ints/sets/pairs from callers
        if not isinstance(self.status, TaskStatus):
            object.__setattr__(self, "status", TaskStatus(self.status))
        if not isinstance(self.priority, TaskPriority):
            object.__setattr__(self, "priority", TaskPriority(self.priority))
        if not isinstance(self.resources, frozenset):
            object.__setattr__(self, "resources", frozenset(self.resources))
        if self.window is not None and not isinstance(self.window, TimeWindow):
            start, end = self.window
            object.__setattr__(self, "window", TimeWindow(start, end))

    def with_changes(self, **changes: object) -> Task:
        return replace(self, **changes)
