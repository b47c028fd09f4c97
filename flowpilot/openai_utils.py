# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""OpenAI client construction and a temperature-tolerant chat completion call."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, BadRequestError


def _rejects_temperature(exc: BadRequestError) -> bool:
    """Some reasoning models only accept the default temperature of 1."""

    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        message = str((body.get("error") or {}).get("message", ""))
        if "temperature" in message and "default (1) value is supported" in message:
            return True
    text = str(exc)
    return "temperature" in text and "unsupported" in text


def build_async_client(api_key: Optional[str] = None) -> AsyncOpenAI:
    return AsyncOpenAI(api_key=api_key or os.environ.get("OPENAI_API_KEY"))


async def async_safe_chat_completion(
    client: AsyncOpenAI,
    *,
    model: str,
    messages: List[Dict[str, Any]],
    temperature: Optional[float] = None,
    **kwargs: Any,
):
    """``chat.completions.create`` that retries once without ``temperature``.

    Only the temperature rejection is retried; every other error propagates.
    """

    params: Dict[str, Any] = {"model": model, "messages": messages, **kwargs}
    if temperature is not None:
        params["temperature"] = temperature

    try:
        return await client.chat.completions.create(**params)
    except BadRequestError as exc:
        if "temperature" not in params or not _rejects_temperature(exc):
            raise
        params.pop("temperature")
        return await client.chat.completions.create(**params)


__all__ = ["async_safe_chat_completion", "build_async_client"]
