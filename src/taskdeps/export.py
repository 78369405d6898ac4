"""Serializable node/edge view of a project graph for visualization.

Schema (the dict export_graph returns, and the JSON document):

    {
      "project_id": str, "version": int,
      "total_duration": float, "critical_path": [task_id, ...],
      "nodes": [{"id", "status", "duration", "priority", "resources",
                 "window", "earliest_start", "slack", "critical"}],
      "edges": [{"id", "from", "to", "type", "strength",
                 "ordering", "critical"}]
    }

The CSV form is an edge list, one row per dependency:
    from,to,type,strength,critical
"""
from __future__ import annotations

import csv
import io
import json
from typing import Any

from taskdeps.graph.critical_path import CriticalPathResult, compute_critical_path
from taskdeps.store.snapshot import GraphSnapshot

CSV_COLUMNS = ("from", "to", "type", "strength", "critical")


def export_graph(
    snapshot: GraphSnapshot, critical: CriticalPathResult | None = None
) -> dict[str, Any]:
    """Node and edge lists with derived slack and critical flags."""
    graph = snapshot.graph
    critical = critical or compute_critical_path(graph)

    nodes = []
    for task in sorted(graph.tasks(), key=lambda t: t.task_id):
        tid = task.task_id
        nodes.append({
            "id": tid,
            "status": task.status.value,
            "duration": task.duration,
            "priority": task.priority.name.lower(),
            "resources": sorted(task.resources),
            "window": [task.window.start, task.window.end] if task.window else None,
            "earliest_start": critical.earliest_start.get(tid),
            "slack": critical.slacks.get(tid),
            "critical": critical.is_critical(tid),
        })

    edges = []
    for edge in graph.edges():
        edges.append({
            "id": edge.edge_id,
            "from": graph.id_of(edge.src),
            "to": graph.id_of(edge.dst),
            "type": edge.dep_type.value,
            "strength": edge.strength,
            "ordering": edge.is_ordering,
            "critical": edge.edge_id in critical.critical_edges,
        })

    return {
        "project_id": snapshot.project_id,
        "version": snapshot.version,
        "total_duration": critical.total_duration,
        "critical_path": list(critical.path),
        "nodes": nodes,
        "edges": edges,
    }


def to_json(exported: dict[str, Any], indent: int | None = None) -> str:
    if indent is None:
        return json.dumps(exported, separators=(",", ":"))
    return json.dumps(exported, indent=indent)


def to_csv(exported: dict[str, Any]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for edge in exported["edges"]:
        writer.writerow([
            edge["from"],
            edge["to"],
            edge["type"],
            f"{edge['strength']:g}",
            "true" if edge["critical"] else "false",
        ])
    return buf.getvalue()
