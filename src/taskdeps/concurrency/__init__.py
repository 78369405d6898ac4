"""Concurrency primitives for per-project graph access.

  - ProjectLock: many snapshot readers or one committing writer
  - CancellationToken: caller-supplied signal checked by analyses
"""
from taskdeps.concurrency.cancellation import CancellationToken
from taskdeps.concurrency.project_lock import ProjectLock

__all__ = [
    "CancellationToken",
    "ProjectLock",
]
