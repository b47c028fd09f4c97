# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Workflow graph models (nodes + typed connections) without external dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Literal, Mapping, Optional, Union

DEFAULT_PORT = "main"


class GraphSchemaError(Exception):
    """Raised when a graph payload cannot be parsed into :class:`WorkflowGraph`.

    Mirrors the ``errors()`` shape of :class:`pydantic.ValidationError`: each
    error is a mapping with ``loc`` and ``msg`` keys.
    """

    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__("graph validation failed")
        self._errors = errors

    def errors(self) -> List[Dict[str, Any]]:
        return self._errors

    def messages(self) -> List[str]:
        parts: List[str] = []
        for err in self._errors:
            loc = err.get("loc") or ()
            location = ".".join(str(part) for part in loc) if isinstance(loc, (list, tuple)) else str(loc)
            message = err.get("msg") or "invalid value"
            parts.append(f"{location}: {message}" if location else str(message))
        return parts

    def __str__(self) -> str:
        return "; ".join(self.messages()) or super().__str__()

    __repr__ = __str__


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class Position:
    x: float
    y: float

    @classmethod
    def from_raw(cls, data: Any) -> Optional["Position"]:
        """Return a position only when both coordinates are numbers."""

        if isinstance(data, Position):
            return data
        if not isinstance(data, Mapping):
            return None
        x, y = data.get("x"), data.get("y")
        if not _is_number(x) or not _is_number(y):
            return None
        return cls(x=x, y=y)

    def model_dump(self) -> Dict[str, Any]:
        return {"x": self.x, "y": self.y}


@dataclass
class Node:
    """A single workflow step; ``type`` points into the node-type registry."""

    id: str
    type: str
    name: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    disabled: bool = False
    position: Optional[Position] = None

    @classmethod
    def model_validate(cls, data: Any) -> "Node":
        if isinstance(data, cls):
            return data

        if not isinstance(data, Mapping):
            raise GraphSchemaError([{"loc": ("node",), "msg": "node must be an object"}])

        errors: List[Dict[str, Any]] = []
        node_id = data.get("id")
        node_type = data.get("type")
        if not isinstance(node_id, str) or not node_id:
            errors.append({"loc": ("id",), "msg": "node id must be a non-empty string"})
        if not isinstance(node_type, str) or not node_type:
            errors.append({"loc": ("type",), "msg": "node type must be a non-empty string"})

        parameters = data.get("parameters")
        if parameters is None:
            parameters = {}
        elif not isinstance(parameters, Mapping):
            errors.append({"loc": ("parameters",), "msg": "parameters must be an object"})

        disabled = data.get("disabled", False)
        if disabled is None:
            disabled = False
        elif not isinstance(disabled, bool):
            errors.append({"loc": ("disabled",), "msg": "disabled must be a boolean"})

        if errors:
            raise GraphSchemaError(errors)

        name = data.get("name")
        return cls(
            id=node_id,
            type=node_type,
            name=name if isinstance(name, str) and name else node_id,
            parameters=dict(parameters),
            disabled=disabled,
            position=Position.from_raw(data.get("position")),
        )

    def model_dump(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "parameters": self.parameters,
            "disabled": self.disabled,
        }
        if self.position is not None:
            data["position"] = self.position.model_dump()
        return data


@dataclass
class Connection:
    """Directed edge from an output port of one node to an input port of another."""

    source_node_id: str
    target_node_id: str
    source_output: str = DEFAULT_PORT
    target_input: str = DEFAULT_PORT
    id: Optional[str] = None

    @classmethod
    def model_validate(cls, data: Any) -> "Connection":
        """Parse either ``{sourceNodeId, targetNodeId}`` or ``{source, target}``."""

        if isinstance(data, cls):
            return data

        if not isinstance(data, Mapping):
            raise GraphSchemaError([{"loc": ("connection",), "msg": "connection must be an object"}])

        source = data.get("sourceNodeId") if "sourceNodeId" in data else data.get("source")
        target = data.get("targetNodeId") if "targetNodeId" in data else data.get("target")

        errors: List[Dict[str, Any]] = []
        if not isinstance(source, str) or not source:
            errors.append({"loc": ("sourceNodeId",), "msg": "connection source node is required"})
        if not isinstance(target, str) or not target:
            errors.append({"loc": ("targetNodeId",), "msg": "connection target node is required"})
        if errors:
            raise GraphSchemaError(errors)

        source_output = data.get("sourceOutput")
        target_input = data.get("targetInput")
        conn_id = data.get("id")
        return cls(
            source_node_id=source,
            target_node_id=target,
            source_output=source_output if isinstance(source_output, str) and source_output else DEFAULT_PORT,
            target_input=target_input if isinstance(target_input, str) and target_input else DEFAULT_PORT,
            id=conn_id if isinstance(conn_id, str) and conn_id else None,
        )

    def port_key(self) -> tuple[str, str, str, str]:
        return (self.source_node_id, self.source_output, self.target_node_id, self.target_input)

    def model_dump(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sourceNodeId": self.source_node_id,
            "sourceOutput": self.source_output,
            "targetNodeId": self.target_node_id,
            "targetInput": self.target_input,
        }


@dataclass
class WorkflowGraph:
    """Nodes in insertion order plus the connections between them."""

    nodes: List[Node] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)

    @classmethod
    def model_validate(cls, data: Any) -> "WorkflowGraph":
        if isinstance(data, cls):
            return data

        if not isinstance(data, Mapping):
            raise GraphSchemaError([{"loc": ("workflow",), "msg": "workflow must be an object"}])

        errors: List[Dict[str, Any]] = []
        raw_nodes = data.get("nodes")
        raw_connections = data.get("connections")
        if raw_connections is None:
            raw_connections = []

        if not isinstance(raw_nodes, list):
            errors.append({"loc": ("nodes",), "msg": "nodes must be an array"})
            raw_nodes = []
        if not isinstance(raw_connections, list):
            errors.append({"loc": ("connections",), "msg": "connections must be an array"})
            raw_connections = []

        nodes: List[Node] = []
        seen: set[str] = set()
        for idx, raw in enumerate(raw_nodes):
            try:
                node = Node.model_validate(raw)
            except GraphSchemaError as exc:
                errors.extend({"loc": ("nodes", idx, *err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors())
                continue
            if node.id in seen:
                errors.append({"loc": ("nodes", idx, "id"), "msg": f"duplicate node id '{node.id}'"})
                continue
            seen.add(node.id)
            nodes.append(node)

        connections: List[Connection] = []
        for idx, raw in enumerate(raw_connections):
            try:
                connections.append(Connection.model_validate(raw))
            except GraphSchemaError as exc:
                errors.extend(
                    {"loc": ("connections", idx, *err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()
                )

        if errors:
            raise GraphSchemaError(errors)

        return cls(nodes=nodes, connections=connections)

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming(self, node_id: str) -> Iterator[Connection]:
        return (c for c in self.connections if c.target_node_id == node_id)

    def model_dump(self) -> Dict[str, Any]:
        return {
            "nodes": [n.model_dump() for n in self.nodes],
            "connections": [c.model_dump() for c in self.connections],
        }


@dataclass
class ValidationIssue:
    """One finding of the structural validator."""

    code: Literal[
        "INVALID_SHAPE",
        "INVALID_SCHEMA",
        "MISSING_TRIGGER",
        "SERVICE_PORT_MISMATCH",
        "MISSING_SERVICE_INPUT",
        "UNKNOWN_NODE_REFERENCE",
        "ORPHAN_NODE",
        "DUPLICATE_CONNECTION",
        "MISSING_REQUIRED_PARAM",
    ]
    message: str
    node_id: Optional[str] = None
    field: Optional[str] = None
    severity: Literal["error", "warning"] = "error"


@dataclass(frozen=True)
class NoChange:
    """The terminal tool left the workflow untouched."""

    changed: bool = field(default=False, init=False)


@dataclass(frozen=True)
class Mutated:
    """The terminal tool produced a new graph (possibly an empty one)."""

    graph: WorkflowGraph
    changed: bool = field(default=True, init=False)


GraphChange = Union[NoChange, Mutated]


@dataclass
class AgentResponse:
    """User-visible outcome of one agent request."""

    change: GraphChange
    message: str
    missing_node_types: List[str] = field(default_factory=list)
    status: Literal["completed", "turn_limit", "cancelled"] = "completed"

    @property
    def graph(self) -> Optional[WorkflowGraph]:
        return self.change.graph if isinstance(self.change, Mutated) else None

    def model_dump(self) -> Dict[str, Any]:
        graph = self.graph
        return {
            "status": self.status,
            "changed": self.change.changed,
            "workflow": graph.model_dump() if graph is not None else None,
            "message": self.message,
            "missingNodeTypes": list(self.missing_node_types),
        }


__all__ = [
    "AgentResponse",
    "Connection",
    "DEFAULT_PORT",
    "GraphChange",
    "GraphSchemaError",
    "Mutated",
    "NoChange",
    "Node",
    "Position",
    "ValidationIssue",
    "WorkflowGraph",
]
