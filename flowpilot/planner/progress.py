# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Progress events streamed to UI observers while the agent loop runs."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Literal, Optional, Set

from flowpilot.logging_utils import log_debug

ProgressEventType = Literal["turn_started", "tool_selected", "tool_result", "validation_result", "final", "error"]


@dataclass
class ProgressEvent:
    type: ProgressEventType
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "data": dict(self.data)}


ProgressSink = Callable[[ProgressEvent], Any]

# Strong references to in-flight async sink calls until they finish.
_PENDING_SINK_TASKS: Set["asyncio.Future[Any]"] = set()


def _on_sink_task_done(task: "asyncio.Future[Any]") -> None:
    _PENDING_SINK_TASKS.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log_debug(f"[progress] 异步进度回调失败，已忽略：{exc}")


def emit_progress(sink: Optional[ProgressSink], event: ProgressEvent) -> None:
    """Push ``event`` to ``sink``; observer failures never reach the caller.

    Coroutine sinks are scheduled on the running event loop and never awaited
    by the caller.
    """

    if sink is None:
        return
    result = None
    try:
        result = sink(event)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            _PENDING_SINK_TASKS.add(task)
            task.add_done_callback(_on_sink_task_done)
    except Exception as exc:  # noqa: BLE001
        if inspect.iscoroutine(result):
            result.close()
        log_debug(f"[progress] 进度回调失败，已忽略：{exc}")


__all__ = ["ProgressEvent", "ProgressEventType", "ProgressSink", "emit_progress"]
