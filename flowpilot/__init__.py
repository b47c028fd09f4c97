# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""FlowPilot: chat-driven workflow graph editing on top of LLM tool calls."""

from flowpilot.models import (
    AgentResponse,
    Connection,
    GraphSchemaError,
    Mutated,
    NoChange,
    Node,
    Position,
    ValidationIssue,
    WorkflowGraph,
)
from flowpilot.verification import validate_workflow_graph

__all__ = [
    "AgentResponse",
    "Connection",
    "GraphSchemaError",
    "Mutated",
    "NoChange",
    "Node",
    "Position",
    "ValidationIssue",
    "WorkflowGraph",
    "validate_workflow_graph",
]
