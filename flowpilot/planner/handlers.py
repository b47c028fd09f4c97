# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Concrete planner tools.

``advise_user`` and ``build_workflow`` end the agent loop. ``validate_workflow``
and ``get_latest_execution_logs`` return JSON-able dictionaries that are fed
back to the model so it can correct itself before finalizing.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from flowpilot.execution_store import ExecutionRecord, ExecutionStore
from flowpilot.logging_utils import log_info, log_warn
from flowpilot.models import AgentResponse, GraphSchemaError, Mutated, NoChange, WorkflowGraph
from flowpilot.node_registry import NodeTypeRegistry, fetch_node_types_or_none
from flowpilot.planner.tool_registry import ToolContext, ToolHandler, ToolName, ToolRegistry
from flowpilot.planner.tools import AdviseUserArgs, BuildWorkflowArgs, ExecutionLogsArgs, ValidateWorkflowArgs
from flowpilot.planner.workflow_builder import find_missing_node_types, merge_workflow_graphs
from flowpilot.service_ports import DEFAULT_SERVICE_CONTRACT, ServicePortContract
from flowpilot.verification import validate_workflow_graph

MISSING_GRAPH_MESSAGE = (
    "build_workflow was called without a workflow graph, so nothing was changed. "
    "Please describe the workflow again and I will rebuild it."
)
DEFAULT_BUILD_MESSAGE = "Workflow updated."


def _coerce_graph_arg(args: Mapping[str, Any]) -> Dict[str, Any]:
    """Models sometimes send ``graph`` as a JSON string; decode it in place."""

    data = dict(args or {})
    graph = data.get("graph")
    if isinstance(graph, str):
        try:
            data["graph"] = json.loads(graph) if graph.strip() else None
        except json.JSONDecodeError:
            data["graph"] = None
    return data


class AdviseUserTool(ToolHandler):
    name = ToolName.ADVISE_USER
    is_final = True
    description = (
        "Answer the user directly without changing the workflow: explanations, "
        "clarifying questions, or follow-up suggestions."
    )
    args_model = AdviseUserArgs

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> AgentResponse:
        data = dict(args or {})
        if isinstance(data.get("suggestions"), str):
            data["suggestions"] = [data["suggestions"]]
        try:
            parsed = self.parse_args(data)
        except ValidationError as exc:
            log_warn(f"[advise_user] 参数不符合 schema，仅保留 message：{exc.errors()}")
            raw_message = data.get("message")
            return AgentResponse(change=NoChange(), message=str(raw_message) if raw_message is not None else "")
        message = parsed.message or ""
        suggestions = [s for s in (parsed.suggestions or []) if isinstance(s, str) and s.strip()]
        if suggestions:
            bullets = "\n".join(f"• {s}" for s in suggestions)
            message = f"{message}\n\n{bullets}" if message else bullets
        return AgentResponse(change=NoChange(), message=message)


class ValidateWorkflowTool(ToolHandler):
    name = ToolName.VALIDATE_WORKFLOW
    description = (
        "Check a candidate workflow for structural problems (trigger, connection "
        "types, dangling references, required parameters) before finalizing it."
    )
    args_model = ValidateWorkflowArgs

    def __init__(
        self,
        node_registry: Optional[NodeTypeRegistry] = None,
        contract: ServicePortContract = DEFAULT_SERVICE_CONTRACT,
    ) -> None:
        self.node_registry = node_registry
        self.contract = contract

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> Dict[str, Any]:
        # graph 不经过 pydantic 校验，非对象输入交给结构校验给出可读错误。
        graph = _coerce_graph_arg(args).get("graph")
        report = validate_workflow_graph(graph, node_registry=self.node_registry, contract=self.contract)
        log_info(f"[validate_workflow] errors={len(report.errors)} warnings={len(report.warnings)}")
        return report.to_tool_result()


def _not_found() -> Dict[str, Any]:
    return {"status": "not_found", "errors": [], "full_logs": [], "source": "none"}


def _node_name(graph: Optional[WorkflowGraph], node_id: str) -> str:
    node = graph.get_node(node_id) if graph is not None else None
    return node.name if node is not None else node_id


def _from_execution_context(
    execution_context: Optional[Mapping[str, Any]], graph: Optional[WorkflowGraph]
) -> Optional[Dict[str, Any]]:
    if not isinstance(execution_context, Mapping):
        return None
    node_errors = execution_context.get("errors") or []
    logs = execution_context.get("logs") or []
    if not node_errors and not logs:
        return None

    if isinstance(node_errors, Mapping):
        errors = [
            {"nodeId": node_id, "nodeName": _node_name(graph, node_id), "error": str(err)}
            for node_id, err in node_errors.items()
        ]
    else:
        errors = [
            {
                "nodeId": e.get("nodeId"),
                "nodeName": e.get("nodeName") or _node_name(graph, str(e.get("nodeId"))),
                "error": e.get("error"),
            }
            for e in node_errors
            if isinstance(e, Mapping)
        ]

    return {
        "status": execution_context.get("lastRunStatus") or "unknown",
        "errors": errors,
        "full_logs": list(logs),
        "source": "context",
    }


def _from_record(record: ExecutionRecord, graph: Optional[WorkflowGraph]) -> Dict[str, Any]:
    errors: List[Dict[str, Any]] = [
        {"nodeId": run.node_id, "nodeName": _node_name(graph, run.node_id), "error": run.error}
        for run in record.node_runs
        if run.error
    ]
    full_logs = [
        f"[{run.status}] {_node_name(graph, run.node_id)}" + (f": {run.error}" if run.error else "")
        for run in record.node_runs
    ]
    return {"status": record.status, "errors": errors, "full_logs": full_logs, "source": "database"}


class ExecutionLogsTool(ToolHandler):
    name = ToolName.GET_LATEST_EXECUTION_LOGS
    description = (
        "Fetch the errors and logs of the most recent run of the workflow. Use it "
        "when the user reports a failure or the last run errored without details."
    )
    args_model = ExecutionLogsArgs

    def __init__(self, execution_store: Optional[ExecutionStore] = None) -> None:
        self.execution_store = execution_store

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> Dict[str, Any]:
        parsed = self.parse_args(args)
        graph = context.current_workflow

        from_context = _from_execution_context(context.execution_context, graph)
        if from_context is not None:
            return from_context

        workflow_id = parsed.workflowId or context.workflow_id
        if not workflow_id or self.execution_store is None:
            return _not_found()

        try:
            record = await self.execution_store.find_latest_execution(workflow_id)
        except Exception as exc:  # noqa: BLE001
            log_warn(f"[get_latest_execution_logs] 查询执行记录失败（workflow={workflow_id}）：{exc}")
            return _not_found()

        if record is None:
            return _not_found()
        return _from_record(record, graph)


class BuildWorkflowTool(ToolHandler):
    name = ToolName.BUILD_WORKFLOW
    is_final = True
    description = (
        "Finalize the workflow. Pass the FULL updated graph (all nodes and "
        "connections, not a diff) together with a short summary for the user."
    )
    args_model = BuildWorkflowArgs

    def __init__(
        self,
        node_registry: Optional[NodeTypeRegistry] = None,
        contract: ServicePortContract = DEFAULT_SERVICE_CONTRACT,
    ) -> None:
        self.node_registry = node_registry
        self.contract = contract

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> AgentResponse:
        data = _coerce_graph_arg(args)
        graph = data.get("graph")
        message = data.get("message") if isinstance(data.get("message"), str) else ""
        if not isinstance(graph, Mapping):
            log_warn("[build_workflow] 缺少 graph 参数，工作流保持不变。")
            return AgentResponse(change=NoChange(), message=MISSING_GRAPH_MESSAGE)

        node_types = fetch_node_types_or_none(self.node_registry, source="build_workflow")
        contract = self.contract.extended_with(node_types) if node_types else self.contract

        try:
            merged = merge_workflow_graphs(graph, context.current_workflow, contract=contract)
        except GraphSchemaError as exc:
            log_warn(f"[build_workflow] graph 结构无效：{exc}")
            return AgentResponse(
                change=NoChange(),
                message=f"The proposed workflow could not be applied: {exc}",
            )

        missing: List[str] = []
        if node_types is not None:
            installed = {str(nt.get("identifier")) for nt in node_types}
            missing = find_missing_node_types(merged, installed)

        return AgentResponse(
            change=Mutated(graph=merged),
            message=message or DEFAULT_BUILD_MESSAGE,
            missing_node_types=missing,
        )


def build_default_tool_registry(
    node_registry: Optional[NodeTypeRegistry] = None,
    execution_store: Optional[ExecutionStore] = None,
    contract: ServicePortContract = DEFAULT_SERVICE_CONTRACT,
) -> ToolRegistry:
    """Build the registry holding the four planner tools."""

    return ToolRegistry(
        [
            BuildWorkflowTool(node_registry, contract),
            AdviseUserTool(),
            ValidateWorkflowTool(node_registry, contract),
            ExecutionLogsTool(execution_store),
        ]
    )


__all__ = [
    "AdviseUserTool",
    "BuildWorkflowTool",
    "DEFAULT_BUILD_MESSAGE",
    "ExecutionLogsTool",
    "MISSING_GRAPH_MESSAGE",
    "ValidateWorkflowTool",
    "build_default_tool_registry",
]
