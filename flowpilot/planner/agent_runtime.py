# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Model-client seam of the agent loop.

The loop only needs one operation from a language model: given the message
history and the tool descriptors, return either a direct answer or a single
tool call. :class:`OpenAIToolCallingClient` implements it on top of Chat
Completions; tests plug in scripted fakes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from openai import AsyncOpenAI

from flowpilot.config import OPENAI_MODEL, TEMPERATURE
from flowpilot.logging_utils import log_llm_message, log_warn
from flowpilot.openai_utils import async_safe_chat_completion, build_async_client


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    def to_message(self, content: Optional[str] = None) -> Dict[str, Any]:
        """Assistant message announcing this call, in Chat Completions format.

        ``content`` is any text the model sent alongside the call.
        """

        return {
            "role": "assistant",
            "content": content or None,
            "tool_calls": [
                {
                    "id": self.id,
                    "type": "function",
                    "function": {"name": self.name, "arguments": json.dumps(self.arguments, ensure_ascii=False)},
                }
            ],
        }


@dataclass
class ModelTurn:
    content: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    raw: Any = None


class ModelClient(Protocol):
    async def complete(
        self, messages: Sequence[Mapping[str, Any]], tools: Sequence[Mapping[str, Any]]
    ) -> ModelTurn:
        ...


def _decode_arguments(raw: Any, tool_name: str) -> Dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        log_warn(f"[OpenAIToolCallingClient] 工具 {tool_name} 的参数不是合法 JSON，已按空参数处理。")
        return {}
    return decoded if isinstance(decoded, dict) else {}


class OpenAIToolCallingClient:
    """Chat Completions client that asks for at most one tool call per turn."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        *,
        model: str = OPENAI_MODEL,
        temperature: Optional[float] = TEMPERATURE,
    ) -> None:
        self.client = client or build_async_client()
        self.model = model
        self.temperature = temperature

    async def complete(
        self, messages: Sequence[Mapping[str, Any]], tools: Sequence[Mapping[str, Any]]
    ) -> ModelTurn:
        resp = await async_safe_chat_completion(
            self.client,
            model=self.model,
            messages=[dict(m) for m in messages],
            temperature=self.temperature,
            tools=list(tools),
            tool_choice="auto",
            parallel_tool_calls=False,
        )
        if not resp.choices:
            raise RuntimeError("模型返回结果为空（choices 为空）。")

        msg = resp.choices[0].message
        log_llm_message(self.model, msg, operation="agent_turn")

        tool_calls = list(msg.tool_calls or [])
        if not tool_calls:
            return ModelTurn(content=msg.content, raw=resp)

        if len(tool_calls) > 1:
            log_warn(f"[OpenAIToolCallingClient] 模型一次返回了 {len(tool_calls)} 个工具调用，仅执行第一个。")
        first = tool_calls[0]
        name = first.function.name
        return ModelTurn(
            content=msg.content,
            tool_call=ToolCall(id=first.id, name=name, arguments=_decode_arguments(first.function.arguments, name)),
            raw=resp,
        )


__all__ = ["ModelClient", "ModelTurn", "OpenAIToolCallingClient", "ToolCall"]
