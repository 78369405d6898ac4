"""Tests for the exception hierarchy and its messages."""
from __future__ import annotations

import pytest

from taskdeps.domain.errors import (
    AnalysisCancelledError,
    ConflictNotFoundError,
    CycleDetectedError,
    DependencyGraphError,
    DuplicateEdgeError,
    EdgeNotFoundError,
    InternalEngineError,
    NotAcyclicError,
    NotFoundError,
    ProjectNotFoundError,
    SelfLoopError,
    TaskInUseError,
    TaskNotFoundError,
    ValidationError,
)


@pytest.mark.parametrize("exc", [
    SelfLoopError("a"),
    DuplicateEdgeError("a", "b", "blocks", 1),
    TaskInUseError("a", [1, 2]),
    CycleDetectedError(["a", "b"]),
    TaskNotFoundError("a"),
    NotAcyclicError(["a"]),
    InternalEngineError("boom"),
    AnalysisCancelledError("stop"),
])
def test_everything_is_a_graph_error(exc: Exception) -> None:
    assert isinstance(exc, DependencyGraphError)


def test_validation_family() -> None:
    for exc in (SelfLoopError("a"), DuplicateEdgeError("a", "b", "blocks", 1), TaskInUseError("a", [])):
        assert isinstance(exc, ValidationError)
    assert not isinstance(CycleDetectedError(["a"]), ValidationError)


def test_not_found_is_a_key_error() -> None:
    for exc in (
        TaskNotFoundError("a"), EdgeNotFoundError(4),
        ProjectNotFoundError("p"), ConflictNotFoundError("c"),
    ):
        assert isinstance(exc, NotFoundError)
        assert isinstance(exc, KeyError)
    with pytest.raises(KeyError):
        raise EdgeNotFoundError(4)


def test_messages() -> None:
    assert str(CycleDetectedError(["A", "B", "C"])) == "Cycle detected: A -> B -> C"
    assert str(EdgeNotFoundError(7)) == "Dependency edge 7 not found"
    assert str(ProjectNotFoundError("p")) == "Project 'p' not found"
    assert "2 task(s)" in str(NotAcyclicError(["a", "b"]))
    assert "(edge 1)" in str(DuplicateEdgeError("a", "b", "blocks", 1))
