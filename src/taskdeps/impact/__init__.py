"""Downstream impact analysis for task changes."""

from taskdeps.impact.analyzer import (
    ChangeType,
    ImpactChange,
    ImpactEntry,
    ImpactLevel,
    ImpactReport,
    ImpactStatus,
    analyze_impact,
)

__all__ = [
    "ChangeType",
    "ImpactChange",
    "ImpactEntry",
    "ImpactLevel",
    "ImpactReport",
    "ImpactStatus",
    "analyze_impact",
]
