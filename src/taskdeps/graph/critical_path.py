"""Critical Path Method over the ordering subgraph.

The critical path is the longest duration-weighted chain of tasks; its
length is the minimum time the project can take.  Every task also gets
a slack (float): how long it can slip without moving the project end.

Algorithm:
  1.  Topologically sort the DAG (Kahn's algorithm).
  2.  Forward pass in topological order:
        ES(t) = max over predecessors p of ES(p) + d(p), 0 for sources.
  3.  total = max over tasks of ES(t) + d(t).
  4.  Backward pass in reverse order:
        LF(t) = min over successors s of LF(s) - d(s), total for sinks.
  5.  slack(t) = LF(t) - d(t) - ES(t).
  6.  Walk from the lowest-id zero-slack source, always stepping to the
      lowest-id zero-slack successor that starts exactly when the
      current task finishes.  Such a successor always exists until a
      sink is reached, so the walk yields a full source-to-sink chain
      whose length equals total.
  7.  Count the critical chains through every zero-slack task.  Tasks
      on at least 80% of them are bottlenecks; the longest task on the
      reported path is the single bottleneck, as in a weighted longest
      path.

O(V + E).  The forward pass is exposed separately because impact
analysis re-runs it on just the affected subgraph.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping

from taskdeps.concurrency.cancellation import CancellationToken, check
from taskdeps.domain.types import EdgeId, TaskId
from taskdeps.graph.adjacency import DependencyGraph
from taskdeps.graph.topological import topological_sort

EPSILON = 1e-9

# a task on at least this share of all critical chains is a bottleneck
BOTTLENECK_SHARE = 0.8
LONG_PATH_TASKS = 10
LOW_COMPLEXITY = 0.3

DurationFn = Callable[[int], float]


@dataclass(slots=True)
class CriticalPathResult:
    """Result of critical path analysis."""
    path: list[TaskId]
    slacks: dict[TaskId, float]
    total_duration: float
    earliest_start: dict[TaskId, float] = field(default_factory=dict)
    latest_finish: dict[TaskId, float] = field(default_factory=dict)
    durations: dict[TaskId, float] = field(default_factory=dict)
    critical_edges: set[EdgeId] = field(default_factory=set)
    bottleneck: TaskId | None = None        # longest task on the path
    bottleneck_duration: float = 0.0
    chain_count: int = 0                    # distinct critical chains
    chain_share: dict[TaskId, float] = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)

    def is_critical(self, task_id: TaskId) -> bool:
        """Zero slack: the task lies on at least one critical path."""
        return self.slacks.get(task_id, 1.0) <= EPSILON

    @property
    def critical_tasks(self) -> set[TaskId]:
        return {t for t, s in self.slacks.items() if s <= EPSILON}

    def earliest_finish(self, task_id: TaskId) -> float:
        return self.earliest_start[task_id] + self.durations[task_id]

    @property
    def bottlenecks(self) -> list[TaskId]:
        """Tasks most critical chains pass through, most shared first."""
        hot = [t for t, s in self.chain_share.items() if s >= BOTTLENECK_SHARE - EPSILON]
        return sorted(hot, key=lambda t: (-self.chain_share[t], t))

    def latest_start(self, task_id: TaskId) -> float:
        return self.latest_finish[task_id] - self.durations[task_id]


def durations_of(
    graph: DependencyGraph, overrides: Mapping[TaskId, float] | None = None
) -> DurationFn:
    """Duration lookup by slot, with optional what-if overrides by task id."""
    overrides = overrides or {}

    def _duration(idx: int) -> float:
        task = graph.task_at(idx)
        return overrides.get(task.task_id, task.duration)

    return _duration


def forward_pass(
    graph: DependencyGraph,
    order: Iterable[int],
    duration: DurationFn,
    cancel: CancellationToken | None = None,
    baseline: Mapping[int, float] | None = None,
) -> dict[int, float]:
    """Earliest starts for the nodes in *order*.

    *baseline* supplies already-known earliest starts for predecessors
    outside *order*; that is what lets impact analysis recompute just
    the downstream part of the graph.
    """
    es: dict[int, float] = dict(baseline or {})
    for node in order:
        check(cancel)
        start = 0.0
        for pred in graph.predecessors(node):
            if pred in es:
                start = max(start, es[pred] + duration(pred))
        es[node] = start
    return es


def backward_pass(
    graph: DependencyGraph,
    order: list[int],
    duration: DurationFn,
    total: float,
    cancel: CancellationToken | None = None,
) -> dict[int, float]:
    """Latest finishes for the nodes in *order* (a topological order)."""
    lf: dict[int, float] = {}
    for node in reversed(order):
        check(cancel)
        finish = total
        for succ in graph.successors(node):
            if succ in lf:
                finish = min(finish, lf[succ] - duration(succ))
        lf[node] = finish
    return lf


def compute_critical_path(
    graph: DependencyGraph,
    cancel: CancellationToken | None = None,
    overrides: Mapping[TaskId, float] | None = None,
) -> CriticalPathResult:
    """Run CPM on *graph*.

    *overrides* replaces individual task durations (by id) for what-if
    questions without touching the graph.  An empty graph yields an
    empty path with total duration 0.

    Raises NotAcyclicError (via topological_sort) if the graph has a
    cycle, and AnalysisCancelledError if *cancel* fires.
    """
    duration = durations_of(graph, overrides)
    order = topological_sort(graph, cancel)
    if not order:
        return CriticalPathResult(path=[], slacks={}, total_duration=0.0)

    es = forward_pass(graph, order, duration, cancel)
    total = max(es[n] + duration(n) for n in order)
    lf = backward_pass(graph, order, duration, total, cancel)

    slack: dict[int, float] = {}
    for node in order:
        s = lf[node] - duration(node) - es[node]
        slack[node] = 0.0 if abs(s) <= EPSILON else s

    path = _walk_critical_chain(graph, order, es, slack, duration, cancel)

    critical_edges: set[EdgeId] = set()
    for edge in graph.edges(ordering_only=True):
        if (
            slack[edge.src] == 0.0
            and slack[edge.dst] == 0.0
            and abs(es[edge.dst] - es[edge.src] - duration(edge.src)) <= EPSILON
        ):
            critical_edges.add(edge.edge_id)

    ids = {n: graph.id_of(n) for n in order}
    through, n_chains = _chain_counts(graph, order, slack, critical_edges)
    result = CriticalPathResult(
        path=[ids[n] for n in path],
        slacks={ids[n]: slack[n] for n in order},
        total_duration=total,
        earliest_start={ids[n]: es[n] for n in order},
        latest_finish={ids[n]: lf[n] for n in order},
        durations={ids[n]: duration(n) for n in order},
        critical_edges=critical_edges,
        chain_count=n_chains,
        chain_share={ids[n]: c / n_chains for n, c in through.items()},
    )
    if path:
        heaviest = max(path, key=duration)
        result.bottleneck = ids[heaviest]
        result.bottleneck_duration = duration(heaviest)
    result.recommendations = _recommend(result, sum(through.values()))
    return result


def _chain_counts(
    graph: DependencyGraph,
    order: list[int],
    slack: dict[int, float],
    critical_edges: set[EdgeId],
) -> tuple[dict[int, int], int]:
    """Number of source-to-sink critical chains through each zero-slack task.

    A predecessor that finishes exactly when a zero-slack task starts
    has zero slack itself, so the critical edges form a DAG whose
    maximal paths are exactly the critical chains.  Counted as
    (chains into n) * (chains out of n).
    """
    preds: dict[int, set[int]] = {n: set() for n in order if slack[n] == 0.0}
    succs: dict[int, set[int]] = {n: set() for n in preds}
    for edge in graph.edges(ordering_only=True):
        if edge.edge_id in critical_edges:
            preds[edge.dst].add(edge.src)
            succs[edge.src].add(edge.dst)

    crit = [n for n in order if n in preds]
    into: dict[int, int] = {}
    for n in crit:
        into[n] = sum(into[p] for p in preds[n]) if preds[n] else 1
    out_of: dict[int, int] = {}
    for n in reversed(crit):
        out_of[n] = sum(out_of[s] for s in succs[n]) if succs[n] else 1
    n_chains = sum(into[n] for n in crit if not succs[n])
    return {n: into[n] * out_of[n] for n in crit}, n_chains


def _recommend(result: CriticalPathResult, chain_length_total: int) -> list[str]:
    recs: list[str] = []
    if len(result.path) > LONG_PATH_TASKS:
        recs.append(
            f"Critical path runs through {len(result.path)} tasks; "
            "split long tasks into smaller pieces"
        )
    bottlenecks = result.bottlenecks
    if bottlenecks:
        recs.append("Focus resources on bottleneck task(s): " + ", ".join(bottlenecks))
    if chain_length_total and len(result.chain_share) / chain_length_total < LOW_COMPLEXITY:
        recs.append(
            f"{result.chain_count} critical chains share most of their tasks; "
            "add parallel work streams"
        )
    return recs


def _walk_critical_chain(
    graph: DependencyGraph,
    order: list[int],
    es: dict[int, float],
    slack: dict[int, float],
    duration: DurationFn,
    cancel: CancellationToken | None,
) -> list[int]:
    sources = [
        n for n in order if slack[n] == 0.0 and not graph.predecessors(n)
    ]
    if not sources:
        return []

    cur = min(sources, key=graph.id_of)
    path = [cur]
    while True:
        check(cancel)
        finish = es[cur] + duration(cur)
        nxt = [
            s for s in graph.successors(cur)
            if slack[s] == 0.0 and abs(es[s] - finish) <= EPSILON
        ]
        if not nxt:
            return path
        cur = min(nxt, key=graph.id_of)
        path.append(cur)
