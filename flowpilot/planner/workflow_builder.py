# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Merge a model-proposed graph into the existing workflow and lay out new nodes.

Editing an existing workflow must never move nodes the user already placed:
positions of known node ids are copied from the existing graph, explicit
positions on new nodes are kept, and everything else is placed to the right
of the existing layout. Regular nodes form a left-to-right staircase on the
main row; service providers (models, memories, tools) are spread on a row
beneath it.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from flowpilot.logging_utils import log_debug
from flowpilot.models import Connection, Node, Position, WorkflowGraph
from flowpilot.service_ports import DEFAULT_SERVICE_CONTRACT, ServicePortContract

REGULAR_X_OFFSET = 300
REGULAR_X_STEP = 300
SERVICE_X_OFFSET = 150
SERVICE_X_STEP = 200
SERVICE_Y_OFFSET = 200
DEFAULT_Y = 200


def _generate_connection_id(used: Set[str]) -> str:
    while True:
        candidate = f"conn_{uuid.uuid4().hex[:12]}"
        if candidate not in used:
            return candidate


def normalize_node(raw: Any) -> Node:
    """Return a private copy of ``raw`` with ``parameters``/``disabled`` defaulted."""

    return copy.deepcopy(Node.model_validate(raw))


def normalize_connections(raw_connections: List[Any]) -> List[Connection]:
    """Canonicalize connection records and give every one of them an id."""

    connections = [copy.deepcopy(Connection.model_validate(raw)) for raw in raw_connections]
    used = {c.id for c in connections if c.id}
    for conn in connections:
        if conn.id:
            continue
        conn.id = _generate_connection_id(used)
        used.add(conn.id)
    return connections


def _layout_anchor(existing: Optional[WorkflowGraph]) -> Tuple[float, float]:
    positioned = [n.position for n in (existing.nodes if existing else []) if n.position is not None]
    if not positioned:
        return 0, DEFAULT_Y
    max_x = max(p.x for p in positioned)
    avg_y = sum(p.y for p in positioned) / len(positioned)
    return max_x, avg_y


def merge_workflow_graphs(
    proposed: WorkflowGraph | Mapping[str, Any],
    existing: Optional[WorkflowGraph] = None,
    *,
    contract: ServicePortContract = DEFAULT_SERVICE_CONTRACT,
) -> WorkflowGraph:
    """Reconcile ``proposed`` against ``existing`` and return the merged graph.

    ``existing`` may be ``None`` for first-time creation; in that case no
    positions are preserved and new nodes are anchored at ``(0, 200)``.
    """

    if isinstance(proposed, WorkflowGraph):
        raw_nodes: List[Any] = list(proposed.nodes)
        raw_connections: List[Any] = list(proposed.connections)
    else:
        parsed = WorkflowGraph.model_validate(proposed)
        raw_nodes, raw_connections = list(parsed.nodes), list(parsed.connections)

    nodes = [normalize_node(n) for n in raw_nodes]
    connections = normalize_connections(raw_connections)

    existing_positions: Dict[str, Position] = {
        n.id: n.position for n in (existing.nodes if existing else []) if n.position is not None
    }
    max_x, avg_y = _layout_anchor(existing)
    regular_index = 0
    service_index = 0

    for node in nodes:
        preserved = existing_positions.get(node.id)
        if preserved is not None:
            node.position = Position(x=preserved.x, y=preserved.y)
            continue
        if node.position is not None:
            continue

        if contract.is_service_node(node.type):
            node.position = Position(
                x=max_x + SERVICE_X_OFFSET + SERVICE_X_STEP * service_index,
                y=avg_y + SERVICE_Y_OFFSET,
            )
            service_index += 1
        else:
            node.position = Position(x=max_x + REGULAR_X_OFFSET + REGULAR_X_STEP * regular_index, y=avg_y)
            regular_index += 1
        log_debug(f"[WorkflowBuilder] 节点 {node.id} 自动布局到 ({node.position.x}, {node.position.y})")

    return WorkflowGraph(nodes=nodes, connections=connections)


def find_missing_node_types(graph: WorkflowGraph, installed_types: Set[str]) -> List[str]:
    """Node types used by ``graph`` that are not installed, in first-use order."""

    missing: List[str] = []
    for node in graph.nodes:
        if node.type not in installed_types and node.type not in missing:
            missing.append(node.type)
    return missing


__all__ = [
    "find_missing_node_types",
    "merge_workflow_graphs",
    "normalize_connections",
    "normalize_node",
]
