"""Cooperative cancellation for long-running analyses.

Analyses check the token at every iteration boundary of their main
loop (topological sort, BFS frontier, DFS step).  Cancelling is just
setting a threading.Event, so any thread can do it and the check is
a single attribute read on the hot path.

Usage:
    token = CancellationToken()
    worker = threading.Thread(target=engine.compute_critical_path,
                              args=("proj",), kwargs={"cancel": token})
    worker.start()
    token.cancel()      # worker raises AnalysisCancelledError
"""
from __future__ import annotations

import threading

from taskdeps.domain.errors import AnalysisCancelledError


class CancellationToken:
    """Caller-owned cancellation signal."""

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = "cancelled by caller"

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelledError(self._reason)


def check(token: CancellationToken | None) -> None:
    """Raise AnalysisCancelledError if *token* has been cancelled."""
    if token is not None and token.cancelled:
        token.raise_if_cancelled()
