"""Analysis options as explicit, validated configuration objects.

Defaults:
  - impact decay 0.7 per hop, propagation threshold 0.05
  - impact levels: low 0.1, medium 0.3, high 0.5, critical 0.8
  - every resource tag has capacity 1 unless configured otherwise
  - conflict severity base weights: dependency 0.9, resource 0.7,
    scheduling 0.6, priority 0.4 (+0.1 when a critical task is involved)

EngineConfig.from_mapping() accepts the JSON-shaped dicts that come in
from outside and rejects unknown keys instead of silently ignoring them.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Mapping

DEFAULT_SEVERITY_WEIGHTS: dict[str, float] = {
    "dependency": 0.9,
    "resource": 0.7,
    "scheduling": 0.6,
    "priority": 0.4,
}


@dataclass(slots=True, frozen=True)
class ImpactConfig:
    """Impact propagation settings."""
    decay: float = 0.7
    threshold: float = 0.05
    level_low: float = 0.1
    level_medium: float = 0.3
    level_high: float = 0.5
    level_critical: float = 0.8

    def __post_init__(self) -> None:
        if not 0.0 < self.decay < 1.0:
            raise ValueError(f"decay must be in (0, 1), got {self.decay}")
        if not 0.0 < self.threshold < 1.0:
            raise ValueError(f"threshold must be in (0, 1), got {self.threshold}")
        levels = (self.level_low, self.level_medium, self.level_high, self.level_critical)
        if not 0.0 <= levels[0] < levels[1] < levels[2] < levels[3] <= 1.0:
            raise ValueError(
                "Impact levels must satisfy: 0 <= low < medium < high < critical <= 1"
            )


@dataclass(slots=True, frozen=True)
class ResolverConfig:
    """Conflict detection and resolution settings.

    capacities: resource tag -> number of tasks that may use it at once
    alternatives: resource tag -> substitute tags for reassignment
    allow_critical_changes: let resolutions change the critical path
    """
    default_capacity: int = 1
    capacities: Mapping[str, int] = field(default_factory=dict)
    alternatives: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    allow_critical_changes: bool = False
    severity_weights: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_SEVERITY_WEIGHTS)
    )
    critical_bonus: float = 0.1

    def __post_init__(self) -> None:
        if self.default_capacity < 1:
            raise ValueError("default_capacity must be >= 1")
        for tag, cap in self.capacities.items():
            if cap < 1:
                raise ValueError(f"capacity for {tag!r} must be >= 1, got {cap}")
        unknown = set(self.severity_weights) - set(DEFAULT_SEVERITY_WEIGHTS)
        if unknown:
            raise ValueError(f"Unknown conflict kinds in severity_weights: {sorted(unknown)}")
        for kind, weight in self.severity_weights.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"severity weight for {kind} must be in [0, 1]")
        if not 0.0 <= self.critical_bonus <= 1.0:
            raise ValueError("critical_bonus must be in [0, 1]")
        # normalise alternatives to tuples so callers may pass lists
        object.__setattr__(
            self,
            "alternatives",
            {tag: tuple(alts) for tag, alts in self.alternatives.items()},
        )

    def capacity(self, tag: str) -> int:
        return self.capacities.get(tag, self.default_capacity)

    def severity_weight(self, kind: str) -> float:
        return self.severity_weights.get(kind, DEFAULT_SEVERITY_WEIGHTS[kind])


@dataclass(slots=True, frozen=True)
class EngineConfig:
    impact: ImpactConfig = field(default_factory=ImpactConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> EngineConfig:
        """Build from a nested dict such as parsed JSON.

        {"impact": {"decay": 0.5}, "resolver": {"capacities": {"gpu": 2}}}
        """
        _reject_unknown(raw, {"impact", "resolver"}, "engine")
        impact_raw = raw.get("impact") or {}
        resolver_raw = raw.get("resolver") or {}
        _reject_unknown(impact_raw, {f.name for f in fields(ImpactConfig)}, "impact")
        _reject_unknown(resolver_raw, {f.name for f in fields(ResolverConfig)}, "resolver")
        return cls(
            impact=ImpactConfig(**impact_raw),
            resolver=ResolverConfig(**resolver_raw),
        )


def _reject_unknown(raw: Mapping[str, Any], allowed: set[str], section: str) -> None:
    unknown = set(raw) - allowed
    if unknown:
        raise ValueError(f"Unknown {section} config key(s): {sorted(unknown)}")
