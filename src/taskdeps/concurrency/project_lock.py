"""Per-project lock: many snapshot readers OR one committing writer.

Each ProjectGraphStore owns one of these.  Mutations (add/remove/update
a dependency, a resolution transaction) hold the write side for their
whole validate-and-commit step.  Analyses take the read side only long
enough to grab a snapshot, then run without any lock.

Built on threading.Condition with a reader count.  Writer preference:
once a writer is waiting, new readers block, so a burst of snapshot
readers cannot starve commits.

The writing thread may still read (a listener or a transaction body
asking the store for its version sees the committed state instead of
deadlocking).  Asking for the write side twice from one thread raises
RuntimeError.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class ProjectLock:
    """Writer-preferring read-write lock for one project graph."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._readers = 0
        self._waiting_writers = 0
        self._writer: int | None = None     # thread ident of the active writer
        self._cond = threading.Condition(threading.Lock())

    @contextmanager
    def read(self) -> Iterator[None]:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                passthrough = True
            else:
                passthrough = False
                while self._writer is not None or self._waiting_writers:
                    self._cond.wait()
                self._readers += 1
        if passthrough:
            yield
            return
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                raise RuntimeError(f"write lock on {self.name or 'project'} is not reentrant")
            self._waiting_writers += 1
            try:
                while self._writer is not None or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = me
        try:
            yield
        finally:
            with self._cond:
                self._writer = None
                self._cond.notify_all()

    @property
    def readers(self) -> int:
        with self._cond:
            return self._readers

    @property
    def write_locked(self) -> bool:
        with self._cond:
            return self._writer is not None

    def __repr__(self) -> str:
        return (
            f"ProjectLock({self.name!r}, readers={self._readers}, "
            f"writing={self._writer is not None})"
        )
