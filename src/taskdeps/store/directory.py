"""Collaborator contracts the engine consumes.

The engine never creates tasks.  It looks them up through a
TaskDirectory the first time an edge references them, and from then
on keeps its own copy in the project graph.  InMemoryTaskDirectory is
the implementation used by tests and embedded callers; a service
would back this with its task database.

The clock is a plain callable returning seconds on the same scale as
TimeWindow values.  The conflict detector uses it to ignore windows
that are already over.
"""
from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Iterable

from taskdeps.domain.errors import TaskNotFoundError
from taskdeps.domain.task import Task
from taskdeps.domain.types import TaskId

Clock = Callable[[], float]


def system_clock() -> float:
    return time.time()


class TaskDirectory(ABC):
    """Lookup of externally managed tasks by id."""

    @abstractmethod
    def get_task(self, task_id: TaskId) -> Task | None:
        """Return the task, or None if no such task exists."""
        ...

    def require(self, task_id: TaskId) -> Task:
        task = self.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task


class InMemoryTaskDirectory(TaskDirectory):
    """Dict-backed directory, safe to share between threads."""

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._lock = threading.Lock()
        self._tasks: dict[TaskId, Task] = {t.task_id: t for t in tasks}

    def get_task(self, task_id: TaskId) -> Task | None:
        with self._lock:
            return self._tasks.get(task_id)

    def put(self, task: Task) -> None:
        with self._lock:
            self._tasks[task.task_id] = task

    def put_all(self, tasks: Iterable[Task]) -> None:
        with self._lock:
            for task in tasks:
                self._tasks[task.task_id] = task

    def discard(self, task_id: TaskId) -> None:
        with self._lock:
            self._tasks.pop(task_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)
