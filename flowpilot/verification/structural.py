# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Structural validation of candidate workflow graphs.

The checks run in a fixed order and collect findings instead of raising, so
the agent loop can hand them back to the model for self-correction:

1. shape (``nodes`` and ``connections`` must be arrays; short-circuits),
2. trigger presence,
3. connection typing and dangling endpoints,
4. orphan nodes and duplicate connections (warnings),
5. required parameters, when the node-type registry is reachable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from flowpilot.models import GraphSchemaError, ValidationIssue, WorkflowGraph
from flowpilot.node_registry import NodeTypeRegistry, fetch_node_types_or_none, index_node_types
from flowpilot.service_ports import DEFAULT_SERVICE_CONTRACT, ServicePortContract, is_trigger_type

from .connection_types import check_connection_types, describe_connection

NO_WORKFLOW_MESSAGE = "No workflow provided. Pass the complete workflow graph in the 'graph' argument."

SUGGEST_FIX_ERRORS = "Fix the errors above, then call validate_workflow again."
SUGGEST_ADDRESS_WARNINGS = "Address the warnings if they matter, then call build_workflow to finalize."
SUGGEST_READY = "The workflow is valid and ready to finalize with build_workflow."


@dataclass
class ValidationReport:
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def add(self, issues: Sequence[ValidationIssue]) -> None:
        for issue in issues:
            (self.warnings if issue.severity == "warning" else self.errors).append(issue)

    def suggestions(self) -> List[str]:
        if self.errors:
            return [SUGGEST_FIX_ERRORS]
        if self.warnings:
            return [SUGGEST_ADDRESS_WARNINGS]
        return [SUGGEST_READY]

    def to_tool_result(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [e.message for e in self.errors],
            "warnings": [w.message for w in self.warnings],
            "suggestions": self.suggestions(),
        }


def _check_shape(raw: Any) -> List[ValidationIssue]:
    if not isinstance(raw, Mapping):
        return [ValidationIssue(code="INVALID_SHAPE", message="Workflow must be a JSON object with 'nodes' and 'connections'.")]

    issues: List[ValidationIssue] = []
    if not isinstance(raw.get("nodes"), list):
        issues.append(
            ValidationIssue(code="INVALID_SHAPE", field="nodes", message="Workflow must contain a 'nodes' array.")
        )
    if not isinstance(raw.get("connections"), list):
        issues.append(
            ValidationIssue(
                code="INVALID_SHAPE", field="connections", message="Workflow must contain a 'connections' array."
            )
        )
    return issues


def _check_trigger(graph: WorkflowGraph) -> List[ValidationIssue]:
    if any(is_trigger_type(n.type) for n in graph.nodes):
        return []
    return [
        ValidationIssue(
            code="MISSING_TRIGGER",
            message="Workflow has no trigger node. Add a trigger (for example 'manual-trigger') as the starting point.",
        )
    ]


def _check_references(graph: WorkflowGraph) -> List[ValidationIssue]:
    node_ids = set(graph.node_ids())
    issues: List[ValidationIssue] = []
    for conn in graph.connections:
        for endpoint, node_id in (("sourceNodeId", conn.source_node_id), ("targetNodeId", conn.target_node_id)):
            if node_id in node_ids:
                continue
            issues.append(
                ValidationIssue(
                    code="UNKNOWN_NODE_REFERENCE",
                    node_id=node_id,
                    field=endpoint,
                    message=f"{describe_connection(conn)} references unknown node '{node_id}' in {endpoint}.",
                )
            )
    return issues


def _check_orphans(graph: WorkflowGraph) -> List[ValidationIssue]:
    touched = set()
    for conn in graph.connections:
        touched.add(conn.source_node_id)
        touched.add(conn.target_node_id)

    return [
        ValidationIssue(
            code="ORPHAN_NODE",
            node_id=node.id,
            severity="warning",
            message=f"Node '{node.id}' ({node.type}) has no connections and will never run.",
        )
        for node in graph.nodes
        if not is_trigger_type(node.type) and node.id not in touched
    ]


def _check_duplicate_connections(graph: WorkflowGraph) -> List[ValidationIssue]:
    seen: set[tuple[str, str, str, str]] = set()
    issues: List[ValidationIssue] = []
    for conn in graph.connections:
        key = conn.port_key()
        if key in seen:
            issues.append(
                ValidationIssue(
                    code="DUPLICATE_CONNECTION",
                    node_id=conn.target_node_id,
                    severity="warning",
                    message=f"{describe_connection(conn)} duplicates an earlier connection between the same ports.",
                )
            )
        seen.add(key)
    return issues


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _check_required_params(graph: WorkflowGraph, node_types: Sequence[Mapping[str, Any]]) -> List[ValidationIssue]:
    by_id = index_node_types(node_types)
    issues: List[ValidationIssue] = []
    for node in graph.nodes:
        descriptor = by_id.get(node.type)
        if descriptor is None:
            continue
        for prop in descriptor.get("properties") or []:
            if not prop.get("required") or "default" in prop:
                continue
            name = prop.get("name")
            if not _is_blank(node.parameters.get(name)):
                continue
            issues.append(
                ValidationIssue(
                    code="MISSING_REQUIRED_PARAM",
                    node_id=node.id,
                    field=f"parameters.{name}",
                    message=f"Node '{node.id}' ({node.type}) is missing required parameter '{name}'.",
                )
            )
    return issues


def validate_workflow_graph(
    raw: Any,
    *,
    node_registry: Optional[NodeTypeRegistry] = None,
    contract: ServicePortContract = DEFAULT_SERVICE_CONTRACT,
) -> ValidationReport:
    """Validate a raw graph payload and return every finding."""

    report = ValidationReport()
    if raw is None:
        report.errors.append(ValidationIssue(code="INVALID_SHAPE", message=NO_WORKFLOW_MESSAGE))
        return report

    shape_issues = _check_shape(raw)
    if shape_issues:
        report.add(shape_issues)
        return report

    try:
        graph = WorkflowGraph.model_validate(raw)
    except GraphSchemaError as exc:
        report.add([ValidationIssue(code="INVALID_SCHEMA", message=msg) for msg in exc.messages()])
        return report

    node_types = fetch_node_types_or_none(node_registry, source="validate_workflow")
    if node_types:
        contract = contract.extended_with(node_types)

    report.add(_check_trigger(graph))
    report.add(check_connection_types(graph, contract))
    report.add(_check_references(graph))
    report.add(_check_orphans(graph))
    report.add(_check_duplicate_connections(graph))
    if node_types is not None:
        report.add(_check_required_params(graph, node_types))
    return report


__all__ = [
    "NO_WORKFLOW_MESSAGE",
    "ValidationReport",
    "validate_workflow_graph",
]
