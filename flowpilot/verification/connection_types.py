# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Nominal type checking of service connections."""

from typing import List

from flowpilot.models import Connection, ValidationIssue, WorkflowGraph
from flowpilot.service_ports import DEFAULT_SERVICE_CONTRACT, ServicePortContract


def describe_connection(conn: Connection) -> str:
    label = f"{conn.source_node_id}.{conn.source_output} -> {conn.target_node_id}.{conn.target_input}"
    return f"Connection '{conn.id}' ({label})" if conn.id else f"Connection {label}"


def check_connection_types(
    graph: WorkflowGraph, contract: ServicePortContract = DEFAULT_SERVICE_CONTRACT
) -> List[ValidationIssue]:
    """Check service edges and required service inputs.

    An edge leaving a service provider must use the provider's service type as
    both its ``sourceOutput`` and its ``targetInput``. Every consumer must have
    at least one incoming edge per required service input.
    """

    issues: List[ValidationIssue] = []
    nodes_by_id = {n.id: n for n in graph.nodes}

    for conn in graph.connections:
        source = nodes_by_id.get(conn.source_node_id)
        if source is None:
            continue
        service_type = contract.service_output(source.type)
        if service_type is None:
            continue

        if conn.source_output != service_type:
            issues.append(
                ValidationIssue(
                    code="SERVICE_PORT_MISMATCH",
                    node_id=source.id,
                    field="sourceOutput",
                    message=(
                        f"{describe_connection(conn)}: sourceOutput must be '{service_type}' because "
                        f"'{source.id}' ({source.type}) provides {service_type}, got '{conn.source_output}'."
                    ),
                )
            )
        if conn.target_input != service_type:
            issues.append(
                ValidationIssue(
                    code="SERVICE_PORT_MISMATCH",
                    node_id=conn.target_node_id,
                    field="targetInput",
                    message=(
                        f"{describe_connection(conn)}: targetInput must be '{service_type}', "
                        f"got '{conn.target_input}'."
                    ),
                )
            )

    for node in graph.nodes:
        required = contract.required_inputs(node.type)
        if not required:
            continue
        connected_inputs = {c.target_input for c in graph.incoming(node.id)}
        for input_name in required:
            if input_name in connected_inputs:
                continue
            issues.append(
                ValidationIssue(
                    code="MISSING_SERVICE_INPUT",
                    node_id=node.id,
                    field=input_name,
                    message=(
                        f"Node '{node.id}' ({node.type}) is missing required service input '{input_name}'. "
                        f"Connect a provider with sourceOutput='{input_name}' and targetInput='{input_name}'."
                    ),
                )
            )

    return issues


__all__ = ["check_connection_types", "describe_connection"]
