"""Shared type aliases used across the engine."""
from __future__ import annotations

from typing import TypeAlias

TaskId: TypeAlias = str
ProjectId: TypeAlias = str
EdgeId: TypeAlias = int
ConflictId: TypeAlias = str
Timestamp: TypeAlias = float  # seconds, same scale as the injected clock
