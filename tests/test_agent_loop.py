import asyncio
import json

import pytest

from flowpilot.execution_store import InMemoryExecutionStore
from flowpilot.models import GraphSchemaError, Mutated, NoChange
from flowpilot.planner.conversation import InMemoryConversationStore
from flowpilot.planner.handlers import build_default_tool_registry
from flowpilot.planner.orchestrator import (
    AgentLoop,
    AgentRequest,
    ModelClientError,
    UnknownToolError,
    run_chat_turn,
)
from flowpilot.planner.tool_registry import ToolHandler, ToolName, ToolRegistry
from flowpilot.planner.tools import ValidateWorkflowArgs

from conftest import ScriptedModelClient, agent_workflow, simple_workflow, text_turn, tool_turn


def _loop(client, node_registry=None, events=None, **kwargs):
    return AgentLoop(
        client,
        build_default_tool_registry(node_registry, InMemoryExecutionStore()),
        node_registry,
        progress_sink=events.append if events is not None else None,
        **kwargs,
    )


def test_advise_user_ends_loop_after_one_turn(node_registry):
    client = ScriptedModelClient([tool_turn("advise_user", {"message": "Which trigger?"})])
    events = []

    response = asyncio.run(_loop(client, node_registry, events).run(AgentRequest(request="build something")))

    assert isinstance(response.change, NoChange)
    assert response.message == "Which trigger?"
    assert len(client.calls) == 1
    assert [e.type for e in events] == ["turn_started", "tool_selected", "final"]
    assert events[-1].data["result"]["message"] == "Which trigger?"


def test_validate_then_build_feeds_tool_result_back(node_registry):
    bad = agent_workflow()
    bad["connections"] = bad["connections"][:1]
    client = ScriptedModelClient(
        [
            tool_turn("validate_workflow", {"graph": bad}, call_id="call_v"),
            tool_turn("build_workflow", {"graph": agent_workflow(), "message": "Built an agent."}, call_id="call_b"),
        ]
    )
    events = []

    response = asyncio.run(_loop(client, node_registry, events).run(AgentRequest(request="agent please")))

    assert isinstance(response.change, Mutated)
    assert response.message == "Built an agent."
    assert response.missing_node_types == []

    second_call = client.calls[1]
    assert second_call[-2]["tool_calls"][0]["id"] == "call_v"
    assert second_call[-1]["role"] == "tool"
    assert second_call[-1]["tool_call_id"] == "call_v"
    fed_back = json.loads(second_call[-1]["content"])
    assert fed_back["valid"] is False
    assert any("modelService" in err for err in fed_back["errors"])

    types = [e.type for e in events]
    assert "validation_result" in types
    assert types[-1] == "final"


def test_direct_answer_without_tool_call(node_registry):
    client = ScriptedModelClient([text_turn("Workflows start with a trigger.")])

    response = asyncio.run(_loop(client, node_registry).run(AgentRequest(request="what is a trigger?")))

    assert isinstance(response.change, NoChange)
    assert response.message == "Workflows start with a trigger."


def test_unknown_tool_raises_and_emits_error(node_registry):
    client = ScriptedModelClient([tool_turn("drop_database")])
    events = []

    with pytest.raises(UnknownToolError) as exc_info:
        asyncio.run(_loop(client, node_registry, events).run(AgentRequest(request="x")))

    assert exc_info.value.tool_name == "drop_database"
    assert events[-1].type == "error"


def test_model_failure_is_fatal(node_registry):
    client = ScriptedModelClient([RuntimeError("rate limited")])

    with pytest.raises(ModelClientError):
        asyncio.run(_loop(client, node_registry).run(AgentRequest(request="x")))


class _ExplodingValidator(ToolHandler):
    name = ToolName.VALIDATE_WORKFLOW
    args_model = ValidateWorkflowArgs

    async def execute(self, args, context):
        raise RuntimeError("validator crashed")


def test_non_terminal_failure_is_fed_back_to_model(node_registry):
    registry = build_default_tool_registry(node_registry)
    registry.register(_ExplodingValidator())
    client = ScriptedModelClient(
        [tool_turn("validate_workflow", {"graph": simple_workflow()}), tool_turn("advise_user", {"message": "ok"})]
    )

    response = asyncio.run(AgentLoop(client, registry, node_registry).run(AgentRequest(request="x")))

    assert response.message == "ok"
    fed_back = json.loads(client.calls[1][-1]["content"])
    assert fed_back["status"] == "error"
    assert "validator crashed" in fed_back["message"]


def test_terminal_failure_propagates(node_registry):
    class _ExplodingBuilder(ToolHandler):
        name = ToolName.BUILD_WORKFLOW
        is_final = True
        args_model = ValidateWorkflowArgs

        async def execute(self, args, context):
            raise RuntimeError("merge crashed")

    events = []
    loop = AgentLoop(
        ScriptedModelClient([tool_turn("build_workflow", {})]),
        ToolRegistry([_ExplodingBuilder()]),
        progress_sink=events.append,
    )

    with pytest.raises(RuntimeError, match="merge crashed"):
        asyncio.run(loop.run(AgentRequest(request="x")))
    assert [e.type for e in events if e.type == "error"] == ["error"]


def test_turn_limit_returns_best_effort_answer(node_registry):
    bad = {"nodes": [{"id": "a", "type": "code"}], "connections": []}
    client = ScriptedModelClient([tool_turn("validate_workflow", {"graph": bad}, call_id=f"c{i}") for i in range(3)])

    response = asyncio.run(_loop(client, node_registry, max_turns=3).run(AgentRequest(request="x")))

    assert response.status == "turn_limit"
    assert isinstance(response.change, NoChange)
    assert "3 steps" in response.message
    assert "no trigger" in response.message
    assert len(client.calls) == 3


def test_cancellation_checked_after_each_turn(node_registry):
    client = ScriptedModelClient([tool_turn("validate_workflow", {"graph": simple_workflow()})])

    response = asyncio.run(
        _loop(client, node_registry).run(AgentRequest(request="x"), is_cancelled=lambda: True)
    )

    assert response.status == "cancelled"
    assert isinstance(response.change, NoChange)
    assert len(client.calls) == 1


def test_progress_sink_failures_are_ignored(node_registry):
    def broken_sink(event):
        raise ValueError("ui went away")

    client = ScriptedModelClient([tool_turn("advise_user", {"message": "fine"})])
    loop = AgentLoop(client, build_default_tool_registry(node_registry), node_registry, progress_sink=broken_sink)

    assert asyncio.run(loop.run(AgentRequest(request="x"))).message == "fine"


def test_prompt_includes_existing_workflow_and_history_tail(node_registry):
    client = ScriptedModelClient([tool_turn("advise_user", {"message": "ok"})])
    history = [{"role": "user", "content": f"old-{i}"} for i in range(12)]

    asyncio.run(
        _loop(client, node_registry, history_window=10).run(
            AgentRequest(request="add a step", existing_graph=simple_workflow(), conversation_history=history)
        )
    )

    system, user = client.calls[0]
    assert system["role"] == "system"
    assert "http-request" in system["content"]
    assert "old-1\n" not in user["content"]
    assert "USER: old-2" in user["content"]
    assert "CURRENT WORKFLOW JSON" in user["content"]
    assert {t["function"]["name"] for t in client.tools_seen[0]} == {t.value for t in ToolName}


def test_registry_outage_does_not_break_the_loop(broken_node_registry):
    client = ScriptedModelClient(
        [tool_turn("build_workflow", {"graph": {"nodes": [{"id": "t", "type": "manual-trigger"}], "connections": []}})]
    )

    response = asyncio.run(_loop(client, broken_node_registry).run(AgentRequest(request="x")))

    assert response.change.changed is True
    assert response.missing_node_types == []


def test_run_chat_turn_records_both_sides(node_registry):
    store = InMemoryConversationStore()
    store.append("s1", "user", "earlier question")
    client = ScriptedModelClient([tool_turn("advise_user", {"message": "answer"})])

    response = asyncio.run(run_chat_turn(_loop(client, node_registry), store, "s1", "new question"))

    assert response.message == "answer"
    assert "USER: earlier question" in client.calls[0][1]["content"]
    stored = [e.model_dump() for e in store.get_all("s1")]
    assert stored[-2] == {"role": "user", "content": "new question"}
    assert stored[-1] == {
        "role": "assistant",
        "content": "answer",
        "meta": {"status": "completed", "changed": False, "missingNodeTypes": []},
    }


def test_async_progress_sink_receives_every_event(node_registry):
    received = []

    async def async_sink(event):
        received.append(event.type)

    async def main():
        loop = AgentLoop(
            ScriptedModelClient([tool_turn("advise_user", {"message": "done"})]),
            build_default_tool_registry(node_registry),
            node_registry,
            progress_sink=async_sink,
        )
        response = await loop.run(AgentRequest(request="x"))
        await asyncio.sleep(0)
        return response

    response = asyncio.run(main())

    assert response.message == "done"
    assert received == ["turn_started", "tool_selected", "final"]


def test_failing_async_progress_sink_is_ignored(node_registry):
    async def failing_sink(event):
        raise ValueError("socket closed")

    async def main():
        loop = AgentLoop(
            ScriptedModelClient([tool_turn("advise_user", {"message": "fine"})]),
            build_default_tool_registry(node_registry),
            node_registry,
            progress_sink=failing_sink,
        )
        response = await loop.run(AgentRequest(request="x"))
        await asyncio.sleep(0)
        return response

    assert asyncio.run(main()).message == "fine"


def test_malformed_existing_graph_emits_error_before_raising(node_registry):
    events = []
    client = ScriptedModelClient([tool_turn("advise_user", {"message": "unused"})])
    request = AgentRequest(request="x", existing_graph={"nodes": [{"id": "n1", "parameters": "oops"}], "connections": []})

    with pytest.raises(GraphSchemaError):
        asyncio.run(_loop(client, node_registry, events).run(request))

    assert [e.type for e in events] == ["error"]
    assert events[0].data["kind"] == "invalid_workflow"
    assert client.calls == []


def test_text_sent_with_a_tool_call_is_replayed(node_registry):
    client = ScriptedModelClient(
        [
            tool_turn("validate_workflow", {"graph": simple_workflow()}, content="Let me check this first."),
            tool_turn("advise_user", {"message": "ok"}),
        ]
    )

    asyncio.run(_loop(client, node_registry).run(AgentRequest(request="x")))

    assert client.calls[1][-2]["content"] == "Let me check this first."
