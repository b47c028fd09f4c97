import asyncio
import json
from types import SimpleNamespace

import pytest

from flowpilot.planner.agent_runtime import OpenAIToolCallingClient, ToolCall


class _FakeCompletions:
    def __init__(self, message):
        self.message = message
        self.requests = []

    async def create(self, **params):
        self.requests.append(params)
        return SimpleNamespace(choices=[SimpleNamespace(message=self.message)] if self.message else [])


def _client(message):
    completions = _FakeCompletions(message)
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIToolCallingClient(fake, model="gpt-test", temperature=0.1), completions


def _tool_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, type="function", function=SimpleNamespace(name=name, arguments=arguments))


def test_first_tool_call_is_decoded_and_request_is_single_call():
    message = SimpleNamespace(
        role="assistant",
        content=None,
        tool_calls=[
            _tool_call("c1", "validate_workflow", json.dumps({"graph": {"nodes": []}})),
            _tool_call("c2", "advise_user", "{}"),
        ],
    )
    client, completions = _client(message)

    turn = asyncio.run(client.complete([{"role": "user", "content": "hi"}], [{"type": "function"}]))

    assert turn.tool_call == ToolCall(id="c1", name="validate_workflow", arguments={"graph": {"nodes": []}})
    request = completions.requests[0]
    assert request["tool_choice"] == "auto"
    assert request["parallel_tool_calls"] is False
    assert request["temperature"] == 0.1
    assert request["model"] == "gpt-test"


def test_invalid_json_arguments_become_empty_dict():
    message = SimpleNamespace(role="assistant", content=None, tool_calls=[_tool_call("c1", "advise_user", "{oops")])
    client, _ = _client(message)

    turn = asyncio.run(client.complete([], []))

    assert turn.tool_call.arguments == {}


def test_plain_answer_has_no_tool_call():
    client, _ = _client(SimpleNamespace(role="assistant", content="hello", tool_calls=None))

    turn = asyncio.run(client.complete([], []))

    assert turn.tool_call is None
    assert turn.content == "hello"


def test_empty_choices_raise():
    client, _ = _client(None)

    with pytest.raises(RuntimeError):
        asyncio.run(client.complete([], []))


def test_tool_call_message_matches_chat_completions_shape():
    message = ToolCall(id="c9", name="build_workflow", arguments={"message": "ok"}).to_message()

    assert message["role"] == "assistant"
    assert message["tool_calls"][0]["function"] == {"name": "build_workflow", "arguments": '{"message": "ok"}'}
    assert message["content"] is None


def test_tool_call_message_keeps_accompanying_text():
    message = ToolCall(id="c1", name="validate_workflow").to_message("Checking the graph.")

    assert message["content"] == "Checking the graph."
