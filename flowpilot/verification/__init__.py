# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Workflow verification helpers used by the planner tools and the CLI."""

from flowpilot.verification.connection_types import check_connection_types, describe_connection
from flowpilot.verification.structural import (
    NO_WORKFLOW_MESSAGE,
    ValidationReport,
    validate_workflow_graph,
)

__all__ = [
    "NO_WORKFLOW_MESSAGE",
    "ValidationReport",
    "check_connection_types",
    "describe_connection",
    "validate_workflow_graph",
]
