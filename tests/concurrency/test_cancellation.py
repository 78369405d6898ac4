"""Tests for cooperative cancellation of analyses."""
from __future__ import annotations

import threading

import pytest

from taskdeps.concurrency.cancellation import CancellationToken, check
from taskdeps.domain.dependency import DependencyType
from taskdeps.domain.errors import AnalysisCancelledError
from taskdeps.domain.task import Task
from taskdeps.graph.adjacency import DependencyGraph
from taskdeps.graph.critical_path import compute_critical_path
from taskdeps.graph.queries import dependency_closure


def _long_chain(n: int) -> DependencyGraph:
    g = DependencyGraph()
    for i in range(n):
        g.add_task(Task(f"t{i:05d}", "p", duration=1))
    for i in range(n - 1):
        g.add_edge(i, i + 1, DependencyType.DEPENDS_ON, 1.0)
    return g


class TestCancellationToken:
    def test_fresh_token(self) -> None:
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()
        check(token)
        check(None)

    def test_reason_carried(self) -> None:
        token = CancellationToken()
        token.cancel("deadline passed")
        with pytest.raises(AnalysisCancelledError, match="deadline passed"):
            check(token)

    def test_cancel_from_another_thread(self) -> None:
        token = CancellationToken()
        t = threading.Thread(target=token.cancel)
        t.start()
        t.join(timeout=5.0)
        assert token.cancelled


class TestCancelledAnalyses:
    def test_critical_path(self) -> None:
        token = CancellationToken()
        token.cancel()
        with pytest.raises(AnalysisCancelledError):
            compute_critical_path(_long_chain(2000), token)

    def test_transitive_dependencies(self) -> None:
        g = _long_chain(500)
        token = CancellationToken()
        token.cancel()
        with pytest.raises(AnalysisCancelledError):
            dependency_closure(g, g.slot_count - 1, include_transitive=True, cancel=token)

    def test_uncancelled_token_is_harmless(self) -> None:
        result = compute_critical_path(_long_chain(300), CancellationToken())
        assert result.total_duration == 300
