"""Arena-backed directed graph of tasks and dependency edges.

Tasks live in a list and are addressed by their integer slot; edges
live in a second list and are addressed by EdgeId (the slot index,
never reused).  Each node keeps two adjacency lists of edge ids,
outgoing and incoming, so in-degree and predecessor queries are as
cheap as successor queries.

Edges reference node slots, not Task objects, so there are no
reference cycles between tasks and their dependency lists and a copy
of the graph is just a copy of five flat containers.

Only ordering edges (depends_on / blocks / prerequisite) are returned
by successors() and predecessors().  related_to edges are stored and
exported but never traversed by the structural algorithms.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterator

from taskdeps.domain.dependency import Dependency, DependencyType
from taskdeps.domain.errors import EdgeNotFoundError, TaskNotFoundError
from taskdeps.domain.task import Task
from taskdeps.domain.types import EdgeId, TaskId


@dataclass(slots=True, frozen=True)
class Edge:
    """Internal edge record: endpoints are node slots."""
    edge_id: EdgeId
    src: int
    dst: int
    dep_type: DependencyType
    strength: float

    @property
    def is_ordering(self) -> bool:
        return self.dep_type.is_ordering


class DependencyGraph:
    """Directed multigraph over an arena of tasks.

    The graph itself enforces nothing beyond referential integrity;
    self loops, duplicates and cycles are the store's business.
    """

    __slots__ = ("_tasks", "_index", "_edges", "_out", "_in")

    def __init__(self) -> None:
        self._tasks: list[Task | None] = []
        self._index: dict[TaskId, int] = {}
        self._edges: list[Edge | None] = []
        self._out: list[list[EdgeId]] = []
        self._in: list[list[EdgeId]] = []

    # ---- mutation --------------------------------------------------------

    def add_task(self, task: Task) -> int:
        """Insert *task* (or replace the stored copy) and return its slot."""
        idx = self._index.get(task.task_id)
        if idx is not None:
            self._tasks[idx] = task
            return idx
        idx = len(self._tasks)
        self._tasks.append(task)
        self._out.append([])
        self._in.append([])
        self._index[task.task_id] = idx
        return idx

    def replace_task(self, task: Task) -> None:
        self._tasks[self.index_of(task.task_id)] = task

    def remove_task(self, task_id: TaskId) -> Task:
        """Remove a task with no incident edges.  The slot stays empty."""
        idx = self.index_of(task_id)
        if self._out[idx] or self._in[idx]:
            raise ValueError(f"Task {task_id!r} still has incident edges")
        task = self._tasks[idx]
        self._tasks[idx] = None
        del self._index[task_id]
        assert task is not None
        return task

    def add_edge(
        self, src: int, dst: int, dep_type: DependencyType, strength: float
    ) -> EdgeId:
        self._check_slot(src)
        self._check_slot(dst)
        edge_id = len(self._edges)
        self._edges.append(Edge(edge_id, src, dst, dep_type, strength))
        self._out[src].append(edge_id)
        self._in[dst].append(edge_id)
        return edge_id

    def remove_edge(self, edge_id: EdgeId) -> Edge:
        edge = self.edge(edge_id)
        self._out[edge.src].remove(edge_id)
        self._in[edge.dst].remove(edge_id)
        self._edges[edge_id] = None
        return edge

    def replace_edge(
        self,
        edge_id: EdgeId,
        dep_type: DependencyType | None = None,
        strength: float | None = None,
    ) -> Edge:
        """Change type and/or strength in place; endpoints never change."""
        edge = self.edge(edge_id)
        updated = replace(
            edge,
            dep_type=edge.dep_type if dep_type is None else dep_type,
            strength=edge.strength if strength is None else strength,
        )
        self._edges[edge_id] = updated
        return updated

    # ---- queries ---------------------------------------------------------

    def has_task(self, task_id: TaskId) -> bool:
        return task_id in self._index

    def index_of(self, task_id: TaskId) -> int:
        try:
            return self._index[task_id]
        except KeyError:
            raise TaskNotFoundError(task_id) from None

    def task_at(self, idx: int) -> Task:
        task = self._tasks[idx]
        if task is None:
            raise IndexError(f"Empty task slot {idx}")
        return task

    def task(self, task_id: TaskId) -> Task:
        return self.task_at(self.index_of(task_id))

    def id_of(self, idx: int) -> TaskId:
        return self.task_at(idx).task_id

    def node_indices(self) -> Iterator[int]:
        """Live node slots in insertion order."""
        return (i for i, t in enumerate(self._tasks) if t is not None)

    def tasks(self) -> Iterator[Task]:
        return (t for t in self._tasks if t is not None)

    def has_edge_id(self, edge_id: EdgeId) -> bool:
        return 0 <= edge_id < len(self._edges) and self._edges[edge_id] is not None

    def edge(self, edge_id: EdgeId) -> Edge:
        if not self.has_edge_id(edge_id):
            raise EdgeNotFoundError(edge_id)
        edge = self._edges[edge_id]
        assert edge is not None
        return edge

    def edges(self, ordering_only: bool = False) -> Iterator[Edge]:
        for edge in self._edges:
            if edge is not None and (edge.is_ordering or not ordering_only):
                yield edge

    def out_edges(self, idx: int, ordering_only: bool = True) -> list[Edge]:
        out = [self._edges[e] for e in self._out[idx]]
        return [e for e in out if e is not None and (e.is_ordering or not ordering_only)]

    def in_edges(self, idx: int, ordering_only: bool = True) -> list[Edge]:
        inc = [self._edges[e] for e in self._in[idx]]
        return [e for e in inc if e is not None and (e.is_ordering or not ordering_only)]

    def successors(self, idx: int) -> list[int]:
        """Slots reachable by one ordering edge (duplicates collapsed)."""
        return list(dict.fromkeys(e.dst for e in self.out_edges(idx)))

    def predecessors(self, idx: int) -> list[int]:
        return list(dict.fromkeys(e.src for e in self.in_edges(idx)))

    def in_degree(self, idx: int) -> int:
        return len(self.predecessors(idx))

    def out_degree(self, idx: int) -> int:
        return len(self.successors(idx))

    def edges_between(self, src: int, dst: int) -> list[Edge]:
        """Every edge src -> dst, any type."""
        return [e for e in self.out_edges(src, ordering_only=False) if e.dst == dst]

    def find_edge(self, src: int, dst: int, dep_type: DependencyType) -> Edge | None:
        for edge in self.edges_between(src, dst):
            if edge.dep_type is dep_type:
                return edge
        return None

    def incident_edge_ids(self, idx: int) -> list[EdgeId]:
        return list(self._out[idx]) + list(self._in[idx])

    def to_dependency(self, edge: Edge) -> Dependency:
        """Public, task-id based view of an internal edge."""
        return Dependency(
            edge_id=edge.edge_id,
            from_task=self.id_of(edge.src),
            to_task=self.id_of(edge.dst),
            dep_type=edge.dep_type,
            strength=edge.strength,
        )

    @property
    def slot_count(self) -> int:
        """Size of the node arena, including empty slots."""
        return len(self._tasks)

    @property
    def node_count(self) -> int:
        return len(self._index)

    @property
    def edge_count(self) -> int:
        return sum(1 for _ in self.edges())

    @property
    def ordering_edge_count(self) -> int:
        return sum(1 for _ in self.edges(ordering_only=True))

    def copy(self) -> DependencyGraph:
        """Independent copy.  Task and Edge records are frozen and shared."""
        clone = DependencyGraph()
        clone._tasks = list(self._tasks)
        clone._index = dict(self._index)
        clone._edges = list(self._edges)
        clone._out = [list(adj) for adj in self._out]
        clone._in = [list(adj) for adj in self._in]
        return clone

    def _check_slot(self, idx: int) -> None:
        if not 0 <= idx < len(self._tasks) or self._tasks[idx] is None:
            raise IndexError(f"Unknown task slot {idx}")

    # ---- dunder ----------------------------------------------------------

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._index

    def __len__(self) -> int:
        return self.node_count

    def __repr__(self) -> str:
        return f"DependencyGraph(tasks={self.node_count}, edges={self.edge_count})"
