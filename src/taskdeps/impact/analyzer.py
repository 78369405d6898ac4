"""Impact analysis: what happens downstream when a task changes.

Given an origin task and a change (complete, delay by d, cancel), the
analyzer answers three questions:

  1.  Which tasks feel it, and how strongly?  Breadth-first walk along
      ordering out-edges.  Each hop multiplies the score by
      decay * edge strength; a task whose score would fall below the
      threshold is not recorded through that edge (another, stronger
      edge may still reach it).  Reported chains are shortest by hop
      count; among equally short chains the strongest one wins.
  2.  How does the schedule move?  The CPM forward pass is re-run on
      just the origin's descendants with the origin's duration
      changed (d + delay, or 0 for complete / cancel); everything
      upstream keeps its baseline earliest start.  Descendants keep
      their durations, so their latest finishes all move by the
      project delay and slack_delta = project_delay - start_shift.
  3.  What is left stranded?  On cancel, a task all of whose ordering
      predecessors are the origin or already orphaned is ORPHANED.
      On complete, a direct successor whose other predecessors are
      all closed is UNBLOCKED.

The score of a recorded task strictly decreases along its chain,
because every factor is at most decay < 1.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from taskdeps.concurrency.cancellation import CancellationToken, check
from taskdeps.config import ImpactConfig
from taskdeps.domain.errors import InvalidDependencyError
from taskdeps.domain.types import TaskId
from taskdeps.graph.adjacency import DependencyGraph
from taskdeps.graph.critical_path import (
    EPSILON,
    CriticalPathResult,
    compute_critical_path,
    forward_pass,
)
from taskdeps.graph.queries import descendants
from taskdeps.graph.topological import topological_sort
from taskdeps.store.snapshot import GraphSnapshot

log = logging.getLogger(__name__)


class ChangeType(Enum):
    COMPLETE = "complete"
    DELAY = "delay"
    CANCEL = "cancel"


@dataclass(slots=True, frozen=True)
class ImpactChange:
    change_type: ChangeType
    delay: float = 0.0

    def __post_init__(self) -> None:
        if self.change_type is ChangeType.DELAY:
            if not self.delay > 0:
                raise InvalidDependencyError(f"delay must be > 0, got {self.delay}")
        elif self.delay:
            raise InvalidDependencyError(f"{self.change_type.value} takes no delay")

    @classmethod
    def complete(cls) -> ImpactChange:
        return cls(ChangeType.COMPLETE)

    @classmethod
    def delayed(cls, duration: float) -> ImpactChange:
        return cls(ChangeType.DELAY, float(duration))

    @classmethod
    def cancel(cls) -> ImpactChange:
        return cls(ChangeType.CANCEL)

    @classmethod
    def parse(cls, value: ImpactChange | ChangeType | str, delay: float | None = None) -> ImpactChange:
        if isinstance(value, ImpactChange):
            return value
        try:
            change_type = ChangeType(value)
        except ValueError:
            allowed = ", ".join(c.value for c in ChangeType)
            raise InvalidDependencyError(
                f"Unknown change type {value!r}; expected one of {allowed}"
            ) from None
        return cls(change_type, float(delay or 0.0))


class ImpactStatus(Enum):
    AFFECTED = "affected"
    DELAYED = "delayed"
    ORPHANED = "orphaned"
    UNBLOCKED = "unblocked"


class ImpactLevel(Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(slots=True, frozen=True)
class ImpactEntry:
    task_id: TaskId
    score: float
    chain: tuple[TaskId, ...]       # origin first, this task last
    status: ImpactStatus
    start_shift: float = 0.0
    slack_delta: float = 0.0
    critical: bool = False

    @property
    def depth(self) -> int:
        return len(self.chain) - 1


@dataclass(slots=True)
class ImpactReport:
    origin: TaskId
    change: ImpactChange
    entries: list[ImpactEntry] = field(default_factory=list)
    baseline_duration: float = 0.0
    project_delay: float = 0.0
    level: ImpactLevel = ImpactLevel.NONE
    level_score: float = 0.0
    recommendations: list[str] = field(default_factory=list)
    mitigations: list[str] = field(default_factory=list)

    @property
    def affected_tasks(self) -> list[TaskId]:
        return [e.task_id for e in self.entries]

    @property
    def orphaned(self) -> list[TaskId]:
        return [e.task_id for e in self.entries if e.status is ImpactStatus.ORPHANED]

    @property
    def unblocked(self) -> list[TaskId]:
        return [e.task_id for e in self.entries if e.status is ImpactStatus.UNBLOCKED]

    @property
    def delayed(self) -> list[TaskId]:
        return [e.task_id for e in self.entries if e.status is ImpactStatus.DELAYED]

    def entry(self, task_id: TaskId) -> ImpactEntry | None:
        for e in self.entries:
            if e.task_id == task_id:
                return e
        return None

    def score(self, task_id: TaskId) -> float:
        e = self.entry(task_id)
        return e.score if e is not None else 0.0


def analyze_impact(
    snapshot: GraphSnapshot,
    task_id: TaskId,
    change: ImpactChange,
    config: ImpactConfig | None = None,
    cancel: CancellationToken | None = None,
    baseline: CriticalPathResult | None = None,
) -> ImpactReport:
    """Propagate *change* on *task_id* through *snapshot*.

    Raises TaskNotFoundError for an unknown origin, NotAcyclicError if
    the snapshot is cyclic and AnalysisCancelledError on cancellation.
    """
    config = config or ImpactConfig()
    graph = snapshot.graph
    origin = graph.index_of(task_id)
    baseline = baseline or compute_critical_path(graph, cancel)

    reached = _propagate(graph, origin, config, cancel)
    shifts, project_delay = _reschedule(graph, origin, change, baseline, cancel)

    orphaned: set[int] = set()
    if change.change_type is ChangeType.CANCEL:
        orphaned = _orphans(graph, origin, cancel)

    entries: list[ImpactEntry] = []
    for idx, (score, chain) in reached.items():
        tid = graph.id_of(idx)
        shift = shifts.get(idx, 0.0)
        entries.append(ImpactEntry(
            task_id=tid,
            score=score,
            chain=tuple(graph.id_of(n) for n in chain),
            status=_status(graph, origin, idx, change, shift, orphaned),
            start_shift=shift,
            slack_delta=_clean(project_delay - shift),
            critical=baseline.is_critical(tid),
        ))

    report = ImpactReport(
        origin=task_id,
        change=change,
        entries=entries,
        baseline_duration=baseline.total_duration,
        project_delay=project_delay,
    )
    _grade(report, config)
    log.debug(
        "Impact of %s on %s: %d task(s), project delay %g, level %s",
        change.change_type.value, task_id, len(entries), project_delay, report.level.value,
    )
    return report


# ---- propagation ---------------------------------------------------------

def _propagate(
    graph: DependencyGraph,
    origin: int,
    config: ImpactConfig,
    cancel: CancellationToken | None,
) -> dict[int, tuple[float, tuple[int, ...]]]:
    """Level-by-level BFS from *origin*: slot -> (score, chain).

    Among chains of the same hop count the highest score wins, ties
    going to the chain with the lowest task ids, so the result does not
    depend on edge insertion order.  Insertion order is hop count, then
    task id.
    """
    reached: dict[int, tuple[float, tuple[int, ...]]] = {}
    visited = {origin}
    frontier: list[tuple[int, float, tuple[int, ...]]] = [(origin, 1.0, (origin,))]
    while frontier:
        best: dict[int, tuple[float, tuple[int, ...]]] = {}
        for node, score, chain in frontier:
            check(cancel)
            for edge in graph.out_edges(node):
                if edge.dst in visited:
                    continue
                nxt = score * config.decay * edge.strength
                if nxt < config.threshold:
                    continue
                path = chain + (edge.dst,)
                held = best.get(edge.dst)
                if held is None or _better(graph, nxt, path, held):
                    best[edge.dst] = (nxt, path)
        frontier = []
        for idx in sorted(best, key=graph.id_of):
            score, path = best[idx]
            visited.add(idx)
            reached[idx] = (score, path)
            frontier.append((idx, score, path))
    return reached


def _better(
    graph: DependencyGraph,
    score: float,
    chain: tuple[int, ...],
    held: tuple[float, tuple[int, ...]],
) -> bool:
    if abs(score - held[0]) > EPSILON:
        return score > held[0]
    return [graph.id_of(n) for n in chain] < [graph.id_of(n) for n in held[1]]


def _reschedule(
    graph: DependencyGraph,
    origin: int,
    change: ImpactChange,
    baseline: CriticalPathResult,
    cancel: CancellationToken | None,
) -> tuple[dict[int, float], float]:
    """Start shifts of the origin's descendants, and the project delay."""
    origin_id = graph.id_of(origin)
    old_duration = baseline.durations[origin_id]
    if change.change_type is ChangeType.DELAY:
        new_duration = old_duration + change.delay
    else:
        new_duration = 0.0

    def duration(idx: int) -> float:
        return new_duration if idx == origin else graph.task_at(idx).duration

    downstream = descendants(graph, origin, cancel)
    base_es = {
        n: baseline.earliest_start[graph.id_of(n)]
        for n in graph.node_indices() if n not in downstream
    }
    order = topological_sort(graph, cancel, downstream)
    es = forward_pass(graph, order, duration, cancel, base_es)

    shifts = {
        n: _clean(es[n] - baseline.earliest_start[graph.id_of(n)]) for n in downstream
    }
    total = max((es[n] + duration(n) for n in graph.node_indices()), default=0.0)
    return shifts, _clean(total - baseline.total_duration)


def _orphans(
    graph: DependencyGraph, origin: int, cancel: CancellationToken | None
) -> set[int]:
    """Descendants left with nothing but the cancelled task upstream."""
    downstream = descendants(graph, origin, cancel)
    orphaned: set[int] = set()
    for node in topological_sort(graph, cancel, downstream):
        preds = graph.predecessors(node)
        if preds and all(p == origin or p in orphaned for p in preds):
            orphaned.add(node)
    return orphaned


def _status(
    graph: DependencyGraph,
    origin: int,
    idx: int,
    change: ImpactChange,
    shift: float,
    orphaned: set[int],
) -> ImpactStatus:
    kind = change.change_type
    if kind is ChangeType.CANCEL:
        return ImpactStatus.ORPHANED if idx in orphaned else ImpactStatus.DELAYED
    if kind is ChangeType.COMPLETE:
        preds = graph.predecessors(idx)
        if origin in preds and all(
            p == origin or graph.task_at(p).status.is_closed for p in preds
        ):
            return ImpactStatus.UNBLOCKED
        return ImpactStatus.AFFECTED
    if kind is ChangeType.DELAY:
        return ImpactStatus.DELAYED if shift > EPSILON else ImpactStatus.AFFECTED
    raise AssertionError(f"Unhandled change type {kind}")


def _clean(value: float) -> float:
    return 0.0 if abs(value) <= EPSILON else value


# ---- grading -------------------------------------------------------------

def _grade(report: ImpactReport, config: ImpactConfig) -> None:
    """Overall level from delay ratio, breadth and critical tasks hit.

    Each part is capped: delay 0.4, affected tasks 0.3 (ten tasks
    saturate), critical tasks 0.3 (five saturate).
    """
    score = 0.0
    if report.project_delay > 0:
        base = report.baseline_duration or report.project_delay
        score += min(0.4, 0.4 * report.project_delay / base)
    score += min(0.3, len(report.entries) / 10 * 0.3)
    n_critical = sum(1 for e in report.entries if e.critical)
    score += min(0.3, n_critical / 5 * 0.3)
    score = round(score, 6)

    if score >= config.level_critical:
        level = ImpactLevel.CRITICAL
    elif score >= config.level_high:
        level = ImpactLevel.HIGH
    elif score >= config.level_medium:
        level = ImpactLevel.MEDIUM
    elif score >= config.level_low:
        level = ImpactLevel.LOW
    else:
        level = ImpactLevel.NONE
    report.level = level
    report.level_score = score

    recs: list[str] = []
    if level in (ImpactLevel.HIGH, ImpactLevel.CRITICAL):
        recs.append("Review and approve the change before applying it")
    if report.project_delay > 0:
        recs.append(f"Project end moves by {report.project_delay:g}; adjust the timeline")
    if len(report.entries) > 5:
        recs.append(f"Notify owners of {len(report.entries)} affected tasks")
    if report.orphaned:
        recs.append(f"Re-plan {len(report.orphaned)} orphaned task(s)")
    if report.unblocked:
        recs.append("Ready to start: " + ", ".join(report.unblocked))
    report.recommendations = recs
    report.mitigations = _mitigations(report, level)


def _mitigations(report: ImpactReport, level: ImpactLevel) -> list[str]:
    """Ways to soften the change before it lands."""
    out: list[str] = []
    if report.project_delay > 0:
        out.append(f"Add a buffer of {report.project_delay:g} to the project timeline")
        out.append("Put more people on the delayed critical path tasks")
    n_critical = sum(1 for e in report.entries if e.critical)
    if level in (ImpactLevel.HIGH, ImpactLevel.CRITICAL) and n_critical:
        out.append(f"Watch the {n_critical} affected critical task(s) for further slips")
    if len(report.entries) > 3:
        out.append(
            f"Set up a shared channel and regular check-ins for the "
            f"{len(report.entries)} affected tasks"
        )
    return out
