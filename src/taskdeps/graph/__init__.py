"""Graph algorithms for task dependency analysis."""

from taskdeps.graph.adjacency import DependencyGraph, Edge
from taskdeps.graph.critical_path import (
    CriticalPathResult,
    backward_pass,
    compute_critical_path,
    forward_pass,
)
from taskdeps.graph.cycle_break import choose_cycle_break, cycle_edges
from taskdeps.graph.cycle_detector import CycleResult, detect_cycle, find_cycles
from taskdeps.graph.queries import (
    ReachedEdge,
    dependency_closure,
    descendants,
    redundant_edges,
    shortest_path,
)
from taskdeps.graph.topological import topological_sort

__all__ = [
    "CriticalPathResult",
    "CycleResult",
    "DependencyGraph",
    "Edge",
    "ReachedEdge",
    "backward_pass",
    "choose_cycle_break",
    "compute_critical_path",
    "cycle_edges",
    "dependency_closure",
    "descendants",
    "detect_cycle",
    "find_cycles",
    "forward_pass",
    "redundant_edges",
    "shortest_path",
    "topological_sort",
]
