"""Dependency edges between tasks.

Direction is always "from precedes to": for A -> B, A must finish
before B can start, whatever the type.  depends_on, blocks and
prerequisite are ordering edges and take part in cycle detection and
critical path analysis.  related_to is informational only.

strength is a soft weight in [0, 1].  Structural algorithms ignore it;
the conflict resolver and impact analyzer use it for scoring.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum

from taskdeps.domain.errors import InvalidDependencyError
from taskdeps.domain.types import EdgeId, TaskId


class DependencyType(Enum):
    DEPENDS_ON = "depends_on"
    BLOCKS = "blocks"
    RELATED_TO = "related_to"
    PREREQUISITE = "prerequisite"

    @property
    def is_ordering(self) -> bool:
        return self is not DependencyType.RELATED_TO

    @classmethod
    def parse(cls, value: DependencyType | str) -> DependencyType:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(t.value for t in cls)
            raise InvalidDependencyError(
                f"Unknown dependency type {value!r}; expected one of {allowed}"
            ) from None


def check_strength(strength: float) -> float:
    """Validate and normalise an edge strength."""
    try:
        value = float(strength)
    except (TypeError, ValueError):
        raise InvalidDependencyError(f"strength must be a number, got {strength!r}") from None
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        raise InvalidDependencyError(f"strength must be within [0, 1], got {strength!r}")
    return value


@dataclass(slots=True, frozen=True)
class Dependency:
    """A stored edge, addressed by task ids (the public view)."""
    edge_id: EdgeId
    from_task: TaskId
    to_task: TaskId
    dep_type: DependencyType
    strength: float = 1.0

    @property
    def is_ordering(self) -> bool:
        return self.dep_type.is_ordering

    def demoted(self) -> Dependency:
        return replace(self, dep_type=DependencyType.RELATED_TO)
