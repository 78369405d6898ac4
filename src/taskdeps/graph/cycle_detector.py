"""Cycle detection over ordering edges using DFS three-color marking.

The three colors:
  WHITE  -- node not yet visited
  GRAY   -- node is on the current DFS path (ancestors of current node)
  BLACK  -- node fully explored (all descendants visited)

A back edge (an edge to a GRAY node) means the graph has a cycle.
The cycle is read straight off the DFS stack: everything from the
gray target to the current node.

The store calls this synchronously on every structural mutation with
a *candidate* edge that has not been written yet, so the question
asked is "would graph + candidate contain a cycle?".  DFS starts at
the candidate's destination, which makes the reported path begin
there: adding C -> A to A -> B -> C reports [A, B, C].

The DFS is iterative.  Project graphs have thousands of tasks and a
long dependency chain would blow the recursion limit.  All state is
local to the call.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from taskdeps.concurrency.cancellation import CancellationToken, check
from taskdeps.domain.types import TaskId
from taskdeps.graph.adjacency import DependencyGraph

WHITE, GRAY, BLACK = 0, 1, 2


@dataclass(slots=True)
class CycleResult:
    """Result of cycle detection.

    cycle_path lists each task once, in edge order; the closing edge
    runs from the last element back to the first.
    """
    has_cycle: bool
    cycle_path: list[TaskId] | None = None
    node_path: list[int] | None = None


def _successors(
    graph: DependencyGraph, node: int, candidate: tuple[int, int] | None
) -> list[int]:
    succ = graph.successors(node)
    if candidate is not None and candidate[0] == node and candidate[1] not in succ:
        succ.append(candidate[1])
    return succ


def _walk(
    graph: DependencyGraph,
    roots: Iterable[int],
    candidate: tuple[int, int] | None,
    cancel: CancellationToken | None,
) -> Iterator[list[int]]:
    """Yield one node cycle per back edge found during a full DFS."""
    color = [WHITE] * graph.slot_count

    for root in roots:
        if color[root] != WHITE:
            continue
        color[root] = GRAY
        path = [root]
        stack: list[Iterator[int]] = [iter(_successors(graph, root, candidate))]
        while stack:
            check(cancel)
            for succ in stack[-1]:
                if color[succ] == GRAY:
                    # back edge -> the cycle is the stack suffix from succ
                    yield path[path.index(succ):]
                elif color[succ] == WHITE:
                    color[succ] = GRAY
                    path.append(succ)
                    stack.append(iter(_successors(graph, succ, candidate)))
                    break
            else:
                color[path.pop()] = BLACK
                stack.pop()


def _roots(graph: DependencyGraph, candidate: tuple[int, int] | None) -> list[int]:
    nodes = list(graph.node_indices())
    if candidate is None:
        return nodes
    return [candidate[1]] + [n for n in nodes if n != candidate[1]]


def detect_cycle(
    graph: DependencyGraph,
    candidate: tuple[int, int] | None = None,
    cancel: CancellationToken | None = None,
) -> CycleResult:
    """Detect whether *graph* (plus an optional *candidate* edge) has a cycle.

    *candidate* is a (src_slot, dst_slot) pair treated as an extra
    ordering edge.  A candidate self loop is reported as a one-node
    cycle.  Runs in O(V + E).
    """
    if candidate is not None and candidate[0] == candidate[1]:
        nodes = [candidate[0]]
        return CycleResult(True, [graph.id_of(candidate[0])], nodes)

    for nodes in _walk(graph, _roots(graph, candidate), candidate, cancel):
        return CycleResult(True, [graph.id_of(n) for n in nodes], nodes)
    return CycleResult(has_cycle=False)


def find_cycles(
    graph: DependencyGraph, cancel: CancellationToken | None = None
) -> list[CycleResult]:
    """Every distinct cycle closed by a DFS back edge.

    Not an enumeration of all elementary cycles (that is exponential);
    one cycle per back edge is enough to report and break each loop.
    Cycles are normalised to start at their smallest task id so the
    output does not depend on DFS start order.
    """
    seen: set[tuple[TaskId, ...]] = set()
    found: list[CycleResult] = []
    for nodes in _walk(graph, graph.node_indices(), None, cancel):
        ids = [graph.id_of(n) for n in nodes]
        pivot = ids.index(min(ids))
        ids = ids[pivot:] + ids[:pivot]
        nodes = nodes[pivot:] + nodes[:pivot]
        key = tuple(ids)
        if key not in seen:
            seen.add(key)
            found.append(CycleResult(True, ids, nodes))
    found.sort(key=lambda c: c.cycle_path or [])
    return found
