"""Topological sort via Kahn's algorithm (BFS with in-degree tracking).

Kahn's algorithm is the ordering step of the critical path method:
tasks with no ordering predecessors come first, then tasks whose only
predecessors are those, and so on.  It also doubles as an acyclicity
check, because on a cyclic graph the queue runs dry before every node
has been emitted.

The algorithm:
  1.  Compute in-degree for every node (ordering edges only).
  2.  Seed a queue with all nodes whose in-degree is 0.
  3.  Pop a node, append it to the result, decrement in-degree of its
      successors.  Any successor whose in-degree drops to 0 enters the
      queue.
  4.  If the result contains all nodes, the graph is a DAG.
      Otherwise there is at least one cycle.

Stored project graphs are acyclic by construction, so a failure here
is an internal invariant violation (NotAcyclicError), not user error.
"""
from __future__ import annotations

from collections import deque
from typing import Iterable

from taskdeps.concurrency.cancellation import CancellationToken, check
from taskdeps.domain.errors import NotAcyclicError
from taskdeps.graph.adjacency import DependencyGraph


def topological_sort(
    graph: DependencyGraph,
    cancel: CancellationToken | None = None,
    nodes: Iterable[int] | None = None,
) -> list[int]:
    """Return node slots in dependency order (predecessors first).

    *nodes* restricts the sort to an induced subgraph; edges leaving
    the subset are ignored.  Raises NotAcyclicError on a cycle and
    AnalysisCancelledError if *cancel* fires.
    """
    subset = list(graph.node_indices()) if nodes is None else list(nodes)
    members = set(subset)

    in_deg: dict[int, int] = {}
    for node in subset:
        in_deg[node] = sum(1 for p in graph.predecessors(node) if p in members)

    q: deque[int] = deque(node for node in subset if in_deg[node] == 0)

    result: list[int] = []
    while q:
        check(cancel)
        node = q.popleft()
        result.append(node)
        for succ in graph.successors(node):
            if succ not in members:
                continue
            in_deg[succ] -= 1
            if in_deg[succ] == 0:
                q.append(succ)

    if len(result) != len(subset):
        done = set(result)
        remaining = [graph.id_of(n) for n in subset if n not in done]
        raise NotAcyclicError(remaining)

    return result
