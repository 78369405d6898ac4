"""Breadth-first traversals over the ordering subgraph.

These back GetDependencies (the predecessor closure of a task), path
lookups between two tasks, and the redundant-edge scan used by the
optimize pass.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass

from taskdeps.concurrency.cancellation import CancellationToken, check
from taskdeps.domain.types import EdgeId
from taskdeps.graph.adjacency import DependencyGraph, Edge


@dataclass(slots=True, frozen=True)
class ReachedEdge:
    """An edge found while walking dependencies, with its hop distance."""
    edge: Edge
    depth: int

    @property
    def direct(self) -> bool:
        return self.depth == 1


def dependency_closure(
    graph: DependencyGraph,
    idx: int,
    include_transitive: bool = False,
    cancel: CancellationToken | None = None,
) -> list[ReachedEdge]:
    """Edges *idx* depends on.

    Depth 1 is every incoming edge, related_to included.  With
    *include_transitive* the walk continues backwards along ordering
    edges only, breadth first, so each edge is reported at its
    smallest depth.
    """
    reached = [ReachedEdge(e, 1) for e in graph.in_edges(idx, ordering_only=False)]
    if not include_transitive:
        return reached

    seen_nodes = {idx}
    seen_edges = {r.edge.edge_id for r in reached}
    q: deque[tuple[int, int]] = deque(
        (r.edge.src, 1) for r in reached if r.edge.is_ordering
    )
    while q:
        check(cancel)
        node, depth = q.popleft()
        if node in seen_nodes:
            continue
        seen_nodes.add(node)
        for edge in graph.in_edges(node):
            if edge.edge_id in seen_edges:
                continue
            seen_edges.add(edge.edge_id)
            reached.append(ReachedEdge(edge, depth + 1))
            q.append((edge.src, depth + 1))
    return reached


def descendants(
    graph: DependencyGraph, idx: int, cancel: CancellationToken | None = None
) -> set[int]:
    """Every slot reachable from *idx* along ordering edges (excluding idx)."""
    seen: set[int] = set()
    q: deque[int] = deque(graph.successors(idx))
    while q:
        check(cancel)
        node = q.popleft()
        if node in seen or node == idx:
            continue
        seen.add(node)
        q.extend(graph.successors(node))
    return seen


def shortest_path(
    graph: DependencyGraph,
    src: int,
    dst: int,
    cancel: CancellationToken | None = None,
) -> list[int] | None:
    """Fewest-hops ordering path src -> dst, or None if unreachable."""
    if src == dst:
        return [src]
    parent: dict[int, int] = {src: src}
    q: deque[int] = deque([src])
    while q:
        check(cancel)
        node = q.popleft()
        for succ in graph.successors(node):
            if succ in parent:
                continue
            parent[succ] = node
            if succ == dst:
                path = [dst]
                while path[-1] != src:
                    path.append(parent[path[-1]])
                path.reverse()
                return path
            q.append(succ)
    return None


def _reachable_avoiding(
    graph: DependencyGraph, src: int, dst: int, cancel: CancellationToken | None
) -> bool:
    """True if dst is reachable from src by a path of two or more hops."""
    seen: set[int] = set()
    stack = [s for s in graph.successors(src) if s != dst]
    while stack:
        check(cancel)
        node = stack.pop()
        if node == dst:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(graph.successors(node))
    return False


def redundant_edges(
    graph: DependencyGraph, cancel: CancellationToken | None = None
) -> list[EdgeId]:
    """Ordering edges implied by other ordering edges.

    An edge u -> v is redundant if a longer ordering path u -> ... -> v
    exists, or if another ordering edge u -> v (different type) is
    stronger (ties keep the lowest id).  On a DAG, dropping all of them
    at once yields the transitive reduction: reachability, earliest
    starts and the critical path are all unchanged.
    """
    result: list[EdgeId] = []
    for u in graph.node_indices():
        by_dst: dict[int, list[Edge]] = {}
        for edge in graph.out_edges(u):
            by_dst.setdefault(edge.dst, []).append(edge)
        for v, parallel in by_dst.items():
            keep = min(parallel, key=lambda e: (-e.strength, e.edge_id))
            if _reachable_avoiding(graph, u, v, cancel):
                result.extend(e.edge_id for e in parallel)
            else:
                result.extend(e.edge_id for e in parallel if e is not keep)
    return sorted(result)
