"""Conflict detection rules.

Four rules, one per ConflictKind:

  dependency  -- a cycle among ordering edges (a prerequisite pair
                 pointing both ways is the two-task case)
  scheduling  -- ordering edge u -> v with both tasks windowed and v
                 planned to start before u ends
  resource    -- tasks sharing a resource tag whose overlapping
                 windows need more units than the tag's capacity
  priority    -- ordering edge u -> v where u has lower priority than
                 the task it holds up

Closed tasks (completed / cancelled) and windows that are already over
according to the injected clock are ignored.  Each rule also builds
the candidate resolutions for its kind.

Severity is in [0, 1]:

    base weight(kind) * (0.5 + 0.5 * intensity) + critical bonus

where intensity is a per-kind measure in [0, 1] (edge strength,
overlap fraction, overload ratio, priority gap) and the bonus applies
when a zero-slack task is involved.
"""
from __future__ import annotations

import hashlib
from collections import defaultdict
from typing import Collection, Iterable, Mapping

from taskdeps.config import ResolverConfig
from taskdeps.conflicts.models import (
    Action,
    AddCapacity,
    Candidate,
    Conflict,
    ConflictKind,
    DemoteEdge,
    MergeTasks,
    ReassignResource,
    RemoveEdge,
    ResolutionStrategy,
    STRATEGIES,
    SetPriority,
    ShiftWindow,
)
from taskdeps.domain.dependency import DependencyType
from taskdeps.domain.errors import NotAcyclicError
from taskdeps.domain.task import Task, TaskPriority
from taskdeps.domain.types import TaskId, Timestamp
from taskdeps.graph.adjacency import DependencyGraph, Edge
from taskdeps.graph.critical_path import compute_critical_path
from taskdeps.graph.cycle_break import choose_cycle_break, cycle_edges
from taskdeps.graph.cycle_detector import find_cycles
from taskdeps.graph.queries import descendants
from taskdeps.store.snapshot import GraphSnapshot

_PRIORITY_SPAN = TaskPriority.CRITICAL - TaskPriority.LOW


def conflict_id(kind: ConflictKind, task_ids: Iterable[str], edge_ids: Iterable[int], extra: str = "") -> str:
    """Stable id: same kind and same ids give the same conflict id."""
    key = "|".join([
        kind.value,
        ",".join(sorted(task_ids)),
        ",".join(str(e) for e in sorted(edge_ids)),
        extra,
    ])
    return f"{kind.value}-{hashlib.sha1(key.encode()).hexdigest()[:12]}"


def detect_conflicts(
    snapshot: GraphSnapshot,
    task_ids: Collection[TaskId] | None = None,
    config: ResolverConfig | None = None,
    now: Timestamp | None = None,
) -> list[Conflict]:
    """Every conflict in *snapshot*, most severe first.

    *task_ids* keeps only conflicts involving at least one of those
    tasks.  *now* is the clock reading used to skip expired windows;
    None disables the check.
    """
    config = config or ResolverConfig()
    graph = snapshot.graph
    critical = _critical_tasks(graph)
    ctx = _Context(graph, snapshot.capacities, config, now, critical)

    found: list[Conflict] = []
    for kind in ConflictKind:
        if kind is ConflictKind.DEPENDENCY:
            found.extend(_dependency_conflicts(ctx))
        elif kind is ConflictKind.SCHEDULING:
            found.extend(_scheduling_conflicts(ctx))
        elif kind is ConflictKind.RESOURCE:
            found.extend(_resource_conflicts(ctx))
        elif kind is ConflictKind.PRIORITY:
            found.extend(_priority_conflicts(ctx))
        else:
            raise AssertionError(f"Unhandled conflict kind {kind}")

    if task_ids is not None:
        wanted = set(task_ids)
        found = [c for c in found if wanted.intersection(c.task_ids)]
    found.sort(key=lambda c: (-c.severity, c.conflict_id))
    return found


class _Context:
    __slots__ = ("graph", "capacities", "config", "now", "critical")

    def __init__(
        self,
        graph: DependencyGraph,
        capacities: Mapping[str, int],
        config: ResolverConfig,
        now: Timestamp | None,
        critical: set[TaskId],
    ) -> None:
        self.graph = graph
        self.capacities = capacities
        self.config = config
        self.now = now
        self.critical = critical

    def capacity(self, tag: str) -> int:
        if tag in self.capacities:
            return self.capacities[tag]
        return self.config.capacity(tag)

    def severity(self, kind: ConflictKind, intensity: float, tasks: Iterable[TaskId]) -> float:
        intensity = min(1.0, max(0.0, intensity))
        score = self.config.severity_weight(kind.value) * (0.5 + 0.5 * intensity)
        if self.critical.intersection(tasks):
            score += self.config.critical_bonus
        return round(min(1.0, score), 6)

    def expired(self, *tasks: Task) -> bool:
        if self.now is None:
            return False
        return all(t.window is not None and t.window.end <= self.now for t in tasks)


def _critical_tasks(graph: DependencyGraph) -> set[TaskId]:
    try:
        return compute_critical_path(graph).critical_tasks
    except NotAcyclicError:
        # no schedule exists while a cycle is present
        return set()


# ---- dependency ----------------------------------------------------------

def _dependency_conflicts(ctx: _Context) -> list[Conflict]:
    graph = ctx.graph
    out: list[Conflict] = []
    for cycle in find_cycles(graph):
        nodes = cycle.node_path or []
        ids = list(cycle.cycle_path or [])
        edges = cycle_edges(graph, nodes)
        edge_ids = tuple(sorted(e.edge_id for e in edges))
        if len(nodes) == 2 and all(e.dep_type is DependencyType.PREREQUISITE for e in edges):
            desc = f"Contradictory prerequisites between {ids[0]!r} and {ids[1]!r}"
        else:
            desc = "Circular dependency: " + " -> ".join(ids + ids[:1])

        victim = choose_cycle_break(graph, nodes)
        candidates: list[Candidate] = []
        for strategy in STRATEGIES[ConflictKind.DEPENDENCY]:
            if strategy is ResolutionStrategy.DEMOTE_EDGE:
                candidates.append(Candidate(
                    strategy, (DemoteEdge(victim.edge_id),),
                    f"Demote weakest edge {victim.edge_id} to related_to",
                ))
            elif strategy is ResolutionStrategy.RESCHEDULE:
                candidates.append(_reschedule_across(graph, victim))
            elif strategy is ResolutionStrategy.MERGE_TASKS:
                keep = min(ids)
                candidates.append(Candidate(
                    strategy,
                    (MergeTasks(keep, tuple(sorted(t for t in ids if t != keep))),),
                    f"Merge {', '.join(sorted(ids))} into one task",
                    auto_applicable=False,
                ))
            else:
                raise AssertionError(f"Unhandled strategy {strategy}")

        out.append(Conflict(
            conflict_id=conflict_id(ConflictKind.DEPENDENCY, ids, edge_ids),
            kind=ConflictKind.DEPENDENCY,
            task_ids=tuple(sorted(ids)),
            edge_ids=edge_ids,
            severity=ctx.severity(
                ConflictKind.DEPENDENCY, max((e.strength for e in edges), default=0.0), ids
            ),
            description=desc,
            candidates=tuple(candidates),
        ))
    return out


def _reschedule_across(graph: DependencyGraph, victim: Edge) -> Candidate:
    """Drop victim (u -> v) and plan u after v instead."""
    actions: list[Action] = [RemoveEdge(victim.edge_id)]
    u = graph.task_at(victim.src)
    v = graph.task_at(victim.dst)
    if u.window is not None and v.window is not None and u.window.start < v.window.end:
        actions.append(ShiftWindow(u.task_id, u.window.shifted_to(v.window.end)))
    return Candidate(
        ResolutionStrategy.RESCHEDULE, tuple(actions),
        f"Drop edge {victim.edge_id} and schedule {u.task_id!r} after {v.task_id!r}",
    )


# ---- scheduling ----------------------------------------------------------

def _scheduling_conflicts(ctx: _Context) -> list[Conflict]:
    graph = ctx.graph
    out: list[Conflict] = []
    for edge in graph.edges(ordering_only=True):
        u = graph.task_at(edge.src)
        v = graph.task_at(edge.dst)
        if u.window is None or v.window is None:
            continue
        if u.status.is_closed or v.status.is_closed or ctx.expired(u, v):
            continue
        if v.window.start >= u.window.end:
            continue

        gap = u.window.end - v.window.start
        candidates: list[Candidate] = []
        for strategy in STRATEGIES[ConflictKind.SCHEDULING]:
            if strategy is ResolutionStrategy.SHIFT_DEPENDENT:
                candidates.append(Candidate(
                    strategy, (ShiftWindow(v.task_id, v.window.shifted_to(u.window.end)),),
                    f"Start {v.task_id!r} when {u.task_id!r} ends",
                ))
            elif strategy is ResolutionStrategy.ALLOW_PARALLEL:
                if edge.dep_type is not DependencyType.PREREQUISITE:
                    candidates.append(Candidate(
                        strategy, (DemoteEdge(edge.edge_id),),
                        f"Let {u.task_id!r} and {v.task_id!r} run in parallel",
                    ))
            elif strategy is ResolutionStrategy.EXTEND_TIMELINE:
                candidates.append(_extend_timeline(graph, edge, gap))
            else:
                raise AssertionError(f"Unhandled strategy {strategy}")

        overlap = u.window.overlap(v.window)
        base = v.window.length or gap
        ids = (u.task_id, v.task_id)
        out.append(Conflict(
            conflict_id=conflict_id(ConflictKind.SCHEDULING, ids, [edge.edge_id]),
            kind=ConflictKind.SCHEDULING,
            task_ids=ids,
            edge_ids=(edge.edge_id,),
            severity=ctx.severity(
                ConflictKind.SCHEDULING, edge.strength * (overlap / base if base else 1.0), ids
            ),
            description=(
                f"{v.task_id!r} is planned to start {gap:g} before "
                f"{u.task_id!r} finishes"
            ),
            candidates=tuple(candidates),
        ))
    return out


def _extend_timeline(graph: DependencyGraph, edge: Edge, delta: float) -> Candidate:
    """Push the dependent task and every windowed task after it by *delta*."""
    affected = {edge.dst} | descendants(graph, edge.dst)
    actions: list[Action] = []
    for idx in sorted(affected, key=graph.id_of):
        task = graph.task_at(idx)
        if task.window is not None and not task.status.is_closed:
            actions.append(ShiftWindow(task.task_id, task.window.shifted_by(delta)))
    return Candidate(
        ResolutionStrategy.EXTEND_TIMELINE, tuple(actions),
        f"Shift {len(actions)} task(s) downstream of {graph.id_of(edge.dst)!r} by {delta:g}",
    )


# ---- resource ------------------------------------------------------------

def _resource_conflicts(ctx: _Context) -> list[Conflict]:
    graph = ctx.graph
    by_tag: dict[str, list[Task]] = defaultdict(list)
    for task in graph.tasks():
        if task.window is None or task.status.is_closed or ctx.expired(task):
            continue
        for tag in task.resources:
            by_tag[tag].append(task)

    out: list[Conflict] = []
    for tag in sorted(by_tag):
        capacity = ctx.capacity(tag)
        for cluster in _overlap_clusters(by_tag[tag]):
            demand = _peak_concurrency(cluster)
            if demand <= capacity:
                continue
            ids = tuple(sorted(t.task_id for t in cluster))
            out.append(Conflict(
                conflict_id=conflict_id(ConflictKind.RESOURCE, ids, [], tag),
                kind=ConflictKind.RESOURCE,
                task_ids=ids,
                edge_ids=(),
                severity=ctx.severity(
                    ConflictKind.RESOURCE, (demand - capacity) / capacity, ids
                ),
                description=(
                    f"Resource {tag!r} needed by {demand} task(s) at once, "
                    f"capacity {capacity}"
                ),
                candidates=tuple(_resource_candidates(ctx, tag, cluster, demand)),
                resource=tag,
            ))
    return out


def _overlap_clusters(tasks: list[Task]) -> list[list[Task]]:
    """Group windowed tasks into connected runs of overlapping windows."""
    ordered = sorted(tasks, key=lambda t: (t.window.start, t.task_id))
    clusters: list[list[Task]] = []
    cur: list[Task] = []
    cur_end = float("-inf")
    for task in ordered:
        if cur and task.window.start >= cur_end:
            clusters.append(cur)
            cur = []
            cur_end = float("-inf")
        cur.append(task)
        cur_end = max(cur_end, task.window.end)
    if cur:
        clusters.append(cur)
    return [c for c in clusters if len(c) > 1]


def _peak_concurrency(tasks: list[Task]) -> int:
    # ends sort before starts at the same instant: half-open windows
    events = sorted(
        [(t.window.start, 1) for t in tasks] + [(t.window.end, -1) for t in tasks],
        key=lambda ev: (ev[0], ev[1]),
    )
    peak = cur = 0
    for _, step in events:
        cur += step
        peak = max(peak, cur)
    return peak


def _resource_candidates(
    ctx: _Context, tag: str, cluster: list[Task], demand: int
) -> list[Candidate]:
    # the least important task (then the latest id) gives way
    mover = max(cluster, key=lambda t: (-t.priority, t.task_id))
    others = [t for t in cluster if t is not mover]
    candidates: list[Candidate] = []
    for strategy in STRATEGIES[ConflictKind.RESOURCE]:
        if strategy is ResolutionStrategy.REASSIGN_RESOURCE:
            alts = [a for a in ctx.config.alternatives.get(tag, ()) if a not in mover.resources]
            if alts:
                candidates.append(Candidate(
                    strategy, (ReassignResource(mover.task_id, tag, alts[0]),),
                    f"Move {mover.task_id!r} from {tag!r} to {alts[0]!r}",
                ))
        elif strategy is ResolutionStrategy.ADD_RESOURCE:
            candidates.append(Candidate(
                strategy, (AddCapacity(tag, demand),),
                f"Raise capacity of {tag!r} to {demand}",
            ))
        elif strategy is ResolutionStrategy.RESCHEDULE_TASKS:
            start = max(t.window.end for t in others)
            candidates.append(Candidate(
                strategy, (ShiftWindow(mover.task_id, mover.window.shifted_to(start)),),
                f"Reschedule {mover.task_id!r} to start at {start:g}",
            ))
        else:
            raise AssertionError(f"Unhandled strategy {strategy}")
    return candidates


# ---- priority ------------------------------------------------------------

def _priority_conflicts(ctx: _Context) -> list[Conflict]:
    graph = ctx.graph
    out: list[Conflict] = []
    for edge in graph.edges(ordering_only=True):
        u = graph.task_at(edge.src)
        v = graph.task_at(edge.dst)
        if u.status.is_closed or v.status.is_closed:
            continue
        if u.priority >= v.priority:
            continue

        candidates: list[Candidate] = []
        for strategy in STRATEGIES[ConflictKind.PRIORITY]:
            if strategy is ResolutionStrategy.INVERT_PRIORITY:
                candidates.append(Candidate(
                    strategy, (SetPriority(u.task_id, v.priority),),
                    f"Raise {u.task_id!r} to {v.priority.name} priority",
                ))
            elif strategy is ResolutionStrategy.BREAK_DEPENDENCY:
                candidates.append(Candidate(
                    strategy, (RemoveEdge(edge.edge_id),),
                    f"Remove dependency {edge.edge_id}",
                ))
            elif strategy is ResolutionStrategy.ALLOW_PARALLEL:
                if edge.dep_type is not DependencyType.PREREQUISITE:
                    candidates.append(Candidate(
                        strategy, (DemoteEdge(edge.edge_id),),
                        f"Let {u.task_id!r} and {v.task_id!r} run in parallel",
                    ))
            else:
                raise AssertionError(f"Unhandled strategy {strategy}")

        gap = (v.priority - u.priority) / _PRIORITY_SPAN
        ids = (u.task_id, v.task_id)
        out.append(Conflict(
            conflict_id=conflict_id(ConflictKind.PRIORITY, ids, [edge.edge_id]),
            kind=ConflictKind.PRIORITY,
            task_ids=ids,
            edge_ids=(edge.edge_id,),
            severity=ctx.severity(ConflictKind.PRIORITY, gap * edge.strength, ids),
            description=(
                f"{u.priority.name} task {u.task_id!r} blocks "
                f"{v.priority.name} task {v.task_id!r}"
            ),
            candidates=tuple(candidates),
        ))
    return out
