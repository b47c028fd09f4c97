# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Planner package entrypoint and public API."""

from flowpilot.planner.agent_runtime import ModelTurn, OpenAIToolCallingClient, ToolCall
from flowpilot.planner.conversation import ConversationWindow, InMemoryConversationStore
from flowpilot.planner.handlers import build_default_tool_registry
from flowpilot.planner.orchestrator import (
    AgentLoop,
    AgentLoopError,
    AgentRequest,
    ModelClientError,
    UnknownToolError,
    run_chat_turn,
)
from flowpilot.planner.progress import ProgressEvent
from flowpilot.planner.tool_registry import ToolContext, ToolHandler, ToolName, ToolRegistry
from flowpilot.planner.workflow_builder import find_missing_node_types, merge_workflow_graphs

__all__ = [
    "AgentLoop",
    "AgentLoopError",
    "AgentRequest",
    "ConversationWindow",
    "InMemoryConversationStore",
    "ModelClientError",
    "ModelTurn",
    "OpenAIToolCallingClient",
    "ProgressEvent",
    "ToolCall",
    "ToolContext",
    "ToolHandler",
    "ToolName",
    "ToolRegistry",
    "UnknownToolError",
    "build_default_tool_registry",
    "find_missing_node_types",
    "merge_workflow_graphs",
    "run_chat_turn",
]
