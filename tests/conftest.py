import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from flowpilot import logging_utils  # noqa: E402
from flowpilot.node_registry import StaticNodeTypeRegistry, load_node_types_from_path  # noqa: E402
from flowpilot.planner.agent_runtime import ModelTurn, ToolCall  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_log_file(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_utils, "LOG_FILE_PATH", tmp_path / "flowpilot.log")


@pytest.fixture
def node_types() -> List[Dict[str, Any]]:
    return load_node_types_from_path()


@pytest.fixture
def node_registry(node_types):
    return StaticNodeTypeRegistry(node_types)


class BrokenNodeRegistry:
    def list_node_types(self):
        raise ConnectionError("registry offline")


@pytest.fixture
def broken_node_registry():
    return BrokenNodeRegistry()


class ScriptedModelClient:
    """Replays a fixed list of turns and records what the loop sent."""

    def __init__(self, turns: Sequence[Any]):
        self._turns = list(turns)
        self.calls: List[List[Mapping[str, Any]]] = []
        self.tools_seen: List[List[Mapping[str, Any]]] = []

    async def complete(self, messages, tools):
        self.calls.append([dict(m) for m in messages])
        self.tools_seen.append(list(tools))
        if not self._turns:
            raise AssertionError("model called more often than scripted")
        turn = self._turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        return turn


def tool_turn(name: str, arguments: Dict[str, Any] | None = None, call_id: str = "call_1", content=None) -> ModelTurn:
    return ModelTurn(content=content, tool_call=ToolCall(id=call_id, name=name, arguments=arguments or {}))


def text_turn(content: str) -> ModelTurn:
    return ModelTurn(content=content)


def simple_workflow() -> Dict[str, Any]:
    return {
        "nodes": [
            {"id": "trigger_1", "type": "manual-trigger", "name": "Start", "position": {"x": 0, "y": 0}},
            {
                "id": "http_1",
                "type": "http-request",
                "name": "Fetch",
                "parameters": {"url": "https://example.com"},
                "position": {"x": 300, "y": 0},
            },
        ],
        "connections": [
            {
                "id": "c1",
                "sourceNodeId": "trigger_1",
                "sourceOutput": "main",
                "targetNodeId": "http_1",
                "targetInput": "main",
            }
        ],
    }


def agent_workflow() -> Dict[str, Any]:
    return {
        "nodes": [
            {"id": "trigger_1", "type": "manual-trigger"},
            {"id": "agent_1", "type": "ai-agent", "parameters": {"userMessage": "hi"}},
            {"id": "model_1", "type": "openai-model", "parameters": {"model": "gpt-4o"}},
            {"id": "memory_1", "type": "buffer-memory"},
        ],
        "connections": [
            {"sourceNodeId": "trigger_1", "targetNodeId": "agent_1"},
            {
                "sourceNodeId": "model_1",
                "sourceOutput": "modelService",
                "targetNodeId": "agent_1",
                "targetInput": "modelService",
            },
            {
                "sourceNodeId": "memory_1",
                "sourceOutput": "memoryService",
                "targetNodeId": "agent_1",
                "targetInput": "memoryService",
            },
        ],
    }
