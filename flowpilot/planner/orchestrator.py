# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Multi-turn tool-calling loop that turns a chat request into a workflow edit.

Each turn the model either answers directly or picks exactly one tool:

* ``advise_user`` / ``build_workflow`` are terminal and produce the
  :class:`~flowpilot.models.AgentResponse` returned to the caller;
* ``validate_workflow`` / ``get_latest_execution_logs`` return data that is
  appended to the conversation so the model can correct itself.

The loop is bounded by ``max_turns``. When the bound is hit the caller gets a
best-effort answer with ``status="turn_limit"`` and an unchanged workflow.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from flowpilot.config import HISTORY_WINDOW, MAX_TURNS
from flowpilot.logging_utils import (
    TraceContext,
    child_span,
    configure_request_logging,
    log_error,
    log_event,
    log_info,
    log_section,
    log_success,
    log_tool_call,
    log_warn,
    use_trace_context,
)
from flowpilot.models import AgentResponse, GraphSchemaError, NoChange, WorkflowGraph
from flowpilot.node_registry import NodeTypeRegistry, fetch_node_types_or_none
from flowpilot.planner.agent_runtime import ModelClient, ModelTurn, ToolCall
from flowpilot.planner.conversation import ConversationStore, ConversationWindow
from flowpilot.planner.progress import ProgressEvent, ProgressSink, emit_progress
from flowpilot.planner.prompts import render_system_prompt, render_user_prompt
from flowpilot.planner.tool_registry import ToolContext, ToolHandler, ToolName, ToolRegistry
from flowpilot.service_ports import DEFAULT_SERVICE_CONTRACT, ServicePortContract


class AgentLoopError(RuntimeError):
    """Fatal failure of the agent loop."""


class UnknownToolError(AgentLoopError):
    def __init__(self, tool_name: str):
        super().__init__(f"Model requested unknown tool '{tool_name}'")
        self.tool_name = tool_name


class ModelClientError(AgentLoopError):
    """The language model could not be reached or returned garbage."""


@dataclass
class AgentRequest:
    request: str
    existing_graph: Optional[WorkflowGraph | Mapping[str, Any]] = None
    conversation_history: List[Any] = field(default_factory=list)
    workflow_id: Optional[str] = None
    execution_context: Optional[Mapping[str, Any]] = None


def _turn_limit_message(max_turns: int, last_text: Optional[str], last_validation: Optional[Mapping[str, Any]]) -> str:
    if last_text:
        return last_text
    message = f"I could not finish the workflow within {max_turns} steps, so nothing was changed."
    errors = list((last_validation or {}).get("errors") or [])
    if errors:
        message += " Latest validation errors: " + "; ".join(str(e) for e in errors)
    return message


class AgentLoop:
    """Drive one request through the model until a terminal tool fires.

    Instances hold only injected collaborators, so one loop can serve many
    concurrent requests.
    """

    def __init__(
        self,
        model_client: ModelClient,
        tool_registry: ToolRegistry,
        node_registry: Optional[NodeTypeRegistry] = None,
        *,
        max_turns: int = MAX_TURNS,
        history_window: int = HISTORY_WINDOW,
        progress_sink: Optional[ProgressSink] = None,
        contract: ServicePortContract = DEFAULT_SERVICE_CONTRACT,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        self.model_client = model_client
        self.tool_registry = tool_registry
        self.node_registry = node_registry
        self.max_turns = max_turns
        self.history_window = history_window
        self.progress_sink = progress_sink
        self.contract = contract

    def _emit(self, event_type: str, **data: Any) -> None:
        emit_progress(self.progress_sink, ProgressEvent(type=event_type, data=data))  # type: ignore[arg-type]

    def _finish(self, response: AgentResponse) -> AgentResponse:
        self._emit("final", result=response.model_dump())
        return response

    def build_initial_messages(
        self, request: AgentRequest, existing: Optional[WorkflowGraph]
    ) -> List[Dict[str, Any]]:
        node_types = fetch_node_types_or_none(self.node_registry, source="agent_loop")
        contract = self.contract.extended_with(node_types) if node_types else self.contract
        window = ConversationWindow.from_history(request.conversation_history, max_entries=self.history_window)
        return [
            {"role": "system", "content": render_system_prompt(node_types, contract.inputs)},
            {
                "role": "user",
                "content": render_user_prompt(
                    request.request,
                    existing_graph=existing,
                    conversation=window,
                    execution_context=request.execution_context,
                ),
            },
        ]

    async def _ask_model(self, messages: Sequence[Mapping[str, Any]], turn: int) -> ModelTurn:
        try:
            return await self.model_client.complete(messages, self.tool_registry.descriptors())
        except Exception as exc:
            log_error(f"[AgentLoop] 第 {turn} 轮调用模型失败：{exc}")
            self._emit("error", turn=turn, message=str(exc), kind="model_client")
            raise ModelClientError(str(exc)) from exc

    def _resolve_handler(self, call: ToolCall, turn: int) -> ToolHandler:
        handler = self.tool_registry.get(call.name)
        if handler is None:
            log_error(f"[AgentLoop] 模型请求了未知工具 {call.name}。")
            self._emit("error", turn=turn, message=f"unknown tool '{call.name}'", kind="unknown_tool")
            raise UnknownToolError(call.name)
        return handler

    async def _run_terminal(self, handler: ToolHandler, call: ToolCall, context: ToolContext, turn: int) -> AgentResponse:
        try:
            result = await handler.execute(call.arguments, context)
        except Exception as exc:
            log_event("tool_failed", {"turn": turn, "error": str(exc)}, level="ERROR", tool_name=call.name)
            self._emit("error", turn=turn, tool=call.name, message=str(exc), kind="tool")
            raise
        log_event(
            "tool_finished",
            {"turn": turn, "changed": result.change.changed, "status": result.status},
            tool_name=call.name,
        )
        return result

    async def _run_non_terminal(
        self, handler: ToolHandler, call: ToolCall, context: ToolContext, turn: int
    ) -> Dict[str, Any]:
        try:
            result = await handler.execute(call.arguments, context)
        except Exception as exc:  # noqa: BLE001
            log_warn(f"[AgentLoop] 工具 {call.name} 执行失败，错误已回传给模型：{exc}")
            result = {"status": "error", "message": f"Tool '{call.name}' failed: {exc}"}
        log_event("tool_finished", {"turn": turn, "result": result}, tool_name=call.name)
        return dict(result)

    def _load_existing_graph(self, request: AgentRequest) -> Optional[WorkflowGraph]:
        if request.existing_graph is None:
            return None
        try:
            return WorkflowGraph.model_validate(request.existing_graph)
        except GraphSchemaError as exc:
            log_error(f"[AgentLoop] 当前 workflow 无法解析：{exc}")
            self._emit("error", turn=0, message=str(exc), kind="invalid_workflow")
            raise

    async def run(self, request: AgentRequest, is_cancelled: Optional[Callable[[], bool]] = None) -> AgentResponse:
        request_id = uuid.uuid4().hex
        token = configure_request_logging(request_id=request_id)
        try:
            with use_trace_context(TraceContext.create(span_name="agent_request")):
                return await self._run(request, is_cancelled)
        finally:
            if token is not None:
                token.var.reset(token)

    async def _run(self, request: AgentRequest, is_cancelled: Optional[Callable[[], bool]]) -> AgentResponse:
        log_section("Workflow Agent", request.request)
        existing = self._load_existing_graph(request)
        messages = self.build_initial_messages(request, existing)
        context = ToolContext(
            request=request.request,
            current_workflow=existing,
            workflow_id=request.workflow_id,
            execution_context=request.execution_context,
        )

        last_text: Optional[str] = None
        last_validation: Optional[Mapping[str, Any]] = None

        for turn in range(1, self.max_turns + 1):
            self._emit("turn_started", turn=turn)
            with child_span(f"turn_{turn}"):
                model_turn = await self._ask_model(messages, turn)
                if model_turn.content:
                    last_text = model_turn.content

                call = model_turn.tool_call
                if call is None:
                    log_info(f"[AgentLoop] 第 {turn} 轮模型直接回答，结束。")
                    return self._finish(AgentResponse(change=NoChange(), message=model_turn.content or ""))

                handler = self._resolve_handler(call, turn)
                log_tool_call("AgentLoop", call.name, args=call.arguments, tool_call_id=call.id)
                log_event("tool_selected", {"turn": turn, "tool_call_id": call.id}, tool_name=call.name)
                self._emit("tool_selected", turn=turn, tool=call.name, tool_call_id=call.id)

                if handler.is_final:
                    response = await self._run_terminal(handler, call, context, turn)
                    log_success(f"[AgentLoop] 终止工具 {call.name} 完成（第 {turn} 轮）。")
                    return self._finish(response)

                result = await self._run_non_terminal(handler, call, context, turn)
                if handler.name == ToolName.VALIDATE_WORKFLOW and "valid" in result:
                    last_validation = result
                    self._emit("validation_result", turn=turn, result=result)
                self._emit("tool_result", turn=turn, tool=call.name, result=result)

                messages.append(call.to_message(model_turn.content))
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": json.dumps(result, ensure_ascii=False, default=str),
                    }
                )

            if is_cancelled is not None and is_cancelled():
                log_warn(f"[AgentLoop] 请求在第 {turn} 轮后被取消。")
                return self._finish(
                    AgentResponse(change=NoChange(), message="Request cancelled.", status="cancelled")
                )

        log_warn(f"[AgentLoop] 达到最大轮数 {self.max_turns}，返回部分结果。")
        return self._finish(
            AgentResponse(
                change=NoChange(),
                message=_turn_limit_message(self.max_turns, last_text, last_validation),
                status="turn_limit",
            )
        )


async def run_chat_turn(
    loop: AgentLoop,
    store: ConversationStore,
    session_id: str,
    request: str,
    *,
    existing_graph: Optional[WorkflowGraph | Mapping[str, Any]] = None,
    workflow_id: Optional[str] = None,
    execution_context: Optional[Mapping[str, Any]] = None,
    is_cancelled: Optional[Callable[[], bool]] = None,
) -> AgentResponse:
    """Run one chat turn against a stored session and record both sides of it."""

    history = [entry.model_dump() for entry in store.get_tail(session_id, loop.history_window)]
    response = await loop.run(
        AgentRequest(
            request=request,
            existing_graph=existing_graph,
            conversation_history=history,
            workflow_id=workflow_id,
            execution_context=execution_context,
        ),
        is_cancelled=is_cancelled,
    )
    store.append(session_id, "user", request)
    store.append(
        session_id,
        "assistant",
        response.message,
        meta={
            "status": response.status,
            "changed": response.change.changed,
            "missingNodeTypes": list(response.missing_node_types),
        },
    )
    return response


__all__ = [
    "AgentLoop",
    "AgentLoopError",
    "AgentRequest",
    "ModelClientError",
    "UnknownToolError",
    "run_chat_turn",
]
