"""Apply conflict resolutions to a project graph, safely and atomically.

Each resolution runs inside ProjectGraphStore.transaction(): the
conflict is re-detected against the committed graph (so a stale id
fails loudly), the chosen candidate is applied to a working copy, the
copy is checked, and only then staged for commit.

A candidate is safe when applying it
  (a) creates no cycle the graph did not already have,
  (b) takes no task off the critical path, unless critical changes
      are explicitly allowed, and
  (c) leaves no self loop, duplicate ordering edge or dangling edge.

If no candidate passes, the result is NO_SAFE_RESOLUTION and the
graph is untouched.  That is an outcome for a human to handle, not an
error.
"""
from __future__ import annotations

import logging
from typing import Collection

from taskdeps.config import ResolverConfig
from taskdeps.conflicts.detector import detect_conflicts
from taskdeps.conflicts.models import (
    Action,
    AddCapacity,
    Candidate,
    Conflict,
    DemoteEdge,
    MergeTasks,
    ReassignResource,
    RemoveEdge,
    ResolutionResult,
    ResolutionStatus,
    ResolutionStrategy,
    SetPriority,
    ShiftWindow,
)
from taskdeps.domain.dependency import DependencyType
from taskdeps.domain.errors import ConflictNotFoundError, NotAcyclicError, ValidationError
from taskdeps.domain.types import ConflictId, TaskId
from taskdeps.graph.adjacency import DependencyGraph
from taskdeps.graph.critical_path import compute_critical_path
from taskdeps.graph.cycle_break import choose_cycle_break
from taskdeps.graph.cycle_detector import find_cycles
from taskdeps.store.directory import Clock, system_clock
from taskdeps.store.graph_store import ProjectGraphStore, Transaction, find_issues
from taskdeps.store.snapshot import GraphSnapshot

log = logging.getLogger(__name__)


def apply_actions(
    graph: DependencyGraph, capacities: dict[str, int], actions: tuple[Action, ...]
) -> None:
    """Apply *actions* in order to a working graph and capacity map."""
    for action in actions:
        if isinstance(action, DemoteEdge):
            graph.replace_edge(action.edge_id, dep_type=DependencyType.RELATED_TO)
        elif isinstance(action, RemoveEdge):
            graph.remove_edge(action.edge_id)
        elif isinstance(action, ShiftWindow):
            task = graph.task(action.task_id)
            graph.replace_task(task.with_changes(window=action.window))
        elif isinstance(action, SetPriority):
            task = graph.task(action.task_id)
            graph.replace_task(task.with_changes(priority=action.priority))
        elif isinstance(action, ReassignResource):
            task = graph.task(action.task_id)
            resources = (task.resources - {action.old_tag}) | {action.new_tag}
            graph.replace_task(task.with_changes(resources=frozenset(resources)))
        elif isinstance(action, AddCapacity):
            capacities[action.tag] = max(capacities.get(action.tag, 0), action.capacity)
        elif isinstance(action, MergeTasks):
            raise ValueError("MergeTasks needs manual action and cannot be applied")
        else:
            raise TypeError(f"Unknown resolution action {action!r}")


class ConflictResolver:
    """Detects and resolves conflicts for one project store.

    Args:
        store: the project graph the resolutions are committed to
        config: capacities, alternatives and severity weights
        clock: time source used to skip expired windows
    """

    # the default strategy for breaking cycles on forced adds
    choose_cycle_break = staticmethod(choose_cycle_break)

    def __init__(
        self,
        store: ProjectGraphStore,
        config: ResolverConfig | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self._config = config or ResolverConfig()
        self._clock = clock

    def detect(
        self, task_ids: Collection[TaskId] | None = None, snapshot: GraphSnapshot | None = None
    ) -> list[Conflict]:
        snapshot = snapshot or self._store.snapshot()
        return detect_conflicts(snapshot, task_ids, self._config, self._clock())

    def resolve(
        self,
        conflict_id: ConflictId,
        strategy: ResolutionStrategy | str | None = None,
        allow_critical_changes: bool | None = None,
    ) -> ResolutionResult:
        """Resolve one conflict.

        With *strategy* only that candidate is tried; without it the
        candidates are tried in order like auto_resolve does.  Raises
        ConflictNotFoundError if the id does not match a current
        conflict and ValidationError if the strategy does not apply.
        """
        if isinstance(strategy, str):
            try:
                strategy = ResolutionStrategy(strategy)
            except ValueError:
                raise ValidationError(f"Unknown resolution strategy {strategy!r}") from None
        allow = self._allow(allow_critical_changes)

        with self._store.transaction() as txn:
            conflict = self._find(txn, conflict_id)
            if strategy is None:
                result = self._try_candidates(txn, conflict, allow)
            else:
                candidate = conflict.candidate(strategy)
                if candidate is None:
                    raise ValidationError(
                        f"Strategy {strategy.value} does not apply to conflict {conflict_id}"
                    )
                result = self._try_candidates(txn, conflict, allow, (candidate,))
        return self._finish(result)

    def auto_resolve(
        self,
        conflict_ids: Collection[ConflictId] | None = None,
        allow_critical_changes: bool | None = None,
    ) -> list[ResolutionResult]:
        """Resolve conflicts most severe first, each in its own transaction.

        Unknown ids raise ConflictNotFoundError before anything is
        changed.  A conflict that disappeared because of an earlier
        resolution in the batch is reported as SUPERSEDED.
        """
        allow = self._allow(allow_critical_changes)
        pending = self.detect()
        if conflict_ids is not None:
            known = {c.conflict_id for c in pending}
            for cid in conflict_ids:
                if cid not in known:
                    raise ConflictNotFoundError(cid)
            wanted = set(conflict_ids)
            pending = [c for c in pending if c.conflict_id in wanted]

        results: list[ResolutionResult] = []
        for queued in pending:
            with self._store.transaction() as txn:
                current = {c.conflict_id: c for c in self._detect_in(txn)}
                conflict = current.get(queued.conflict_id)
                if conflict is None:
                    result = ResolutionResult(
                        queued.conflict_id, ResolutionStatus.SUPERSEDED,
                        reason="resolved by an earlier resolution",
                    )
                else:
                    result = self._try_candidates(txn, conflict, allow)
            results.append(self._finish(result))
        return results

    # ---- internals -------------------------------------------------------

    def _allow(self, override: bool | None) -> bool:
        return self._config.allow_critical_changes if override is None else override

    def _detect_in(self, txn: Transaction) -> list[Conflict]:
        snap = GraphSnapshot(self._store.project_id, txn.base_version, txn.graph, txn.capacities)
        return self.detect(snapshot=snap)

    def _find(self, txn: Transaction, conflict_id: ConflictId) -> Conflict:
        for conflict in self._detect_in(txn):
            if conflict.conflict_id == conflict_id:
                return conflict
        raise ConflictNotFoundError(conflict_id)

    def _try_candidates(
        self,
        txn: Transaction,
        conflict: Conflict,
        allow_critical: bool,
        candidates: tuple[Candidate, ...] | None = None,
    ) -> ResolutionResult:
        candidates = conflict.candidates if candidates is None else candidates
        rejected: list[tuple[ResolutionStrategy, str]] = []
        manual: Candidate | None = None
        for cand in candidates:
            if not cand.auto_applicable:
                manual = manual or cand
                rejected.append((cand.strategy, "requires manual action"))
                continue
            work = txn.working_copy()
            capacities = dict(txn.capacities)
            try:
                apply_actions(work, capacities, cand.actions)
            except (KeyError, ValueError) as exc:
                rejected.append((cand.strategy, f"cannot apply: {exc}"))
                continue
            reason = self._unsafe_reason(txn.graph, work, allow_critical)
            if reason:
                rejected.append((cand.strategy, reason))
                continue
            txn.stage(work, capacities)
            return ResolutionResult(
                conflict.conflict_id, ResolutionStatus.APPLIED, cand.strategy,
                cand.actions, version=txn.base_version + 1, rejected=tuple(rejected),
            )

        if manual is not None and all(not c.auto_applicable for c in candidates):
            return ResolutionResult(
                conflict.conflict_id, ResolutionStatus.MANUAL_ACTION_REQUIRED,
                manual.strategy, manual.actions, reason=manual.description,
                rejected=tuple(rejected),
            )
        return ResolutionResult(
            conflict.conflict_id, ResolutionStatus.NO_SAFE_RESOLUTION,
            reason="; ".join(f"{s.value}: {r}" for s, r in rejected) or "no candidates",
            rejected=tuple(rejected),
        )

    def _unsafe_reason(
        self, before: DependencyGraph, after: DependencyGraph, allow_critical: bool
    ) -> str | None:
        old_cycles = {tuple(c.cycle_path or []) for c in find_cycles(before)}
        for cycle in find_cycles(after):
            if tuple(cycle.cycle_path or []) not in old_cycles:
                return "would introduce cycle " + " -> ".join(cycle.cycle_path or [])

        structural = [i for i in find_issues(after, self._store.project_id) if i.kind != "cycle"]
        if structural:
            return structural[0].message

        if not allow_critical:
            lost = _lost_critical(before, after)
            if lost:
                return "would take " + ", ".join(sorted(lost)) + " off the critical path"
        return None

    def _finish(self, result: ResolutionResult) -> ResolutionResult:
        if result.status is ResolutionStatus.APPLIED:
            log.info(
                "Resolved conflict %s with %s (%d action(s), version %s)",
                result.conflict_id, result.strategy.value if result.strategy else "-",
                len(result.actions), result.version,
            )
        elif result.status is not ResolutionStatus.SUPERSEDED:
            log.warning("Conflict %s left unresolved: %s (%s)",
                        result.conflict_id, result.status.value, result.reason)
        return result


def _lost_critical(before: DependencyGraph, after: DependencyGraph) -> set[TaskId]:
    """Tasks critical before the change and not after it."""
    try:
        old = compute_critical_path(before).critical_tasks
    except NotAcyclicError:
        # no baseline schedule to preserve
        return set()
    try:
        new = compute_critical_path(after).critical_tasks
    except NotAcyclicError:
        return old
    return old - new

