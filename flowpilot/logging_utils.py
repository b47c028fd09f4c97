# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Console + JSONL logging helpers shared by the planner and validators."""

from __future__ import annotations

import contextlib
import contextvars
import json
import os
import shutil
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional

RESET = "\033[0m"
COLORS = {
    "blue": "\033[94m",
    "cyan": "\033[96m",
    "green": "\033[92m",
    "yellow": "\033[93m",
    "red": "\033[91m",
    "magenta": "\033[95m",
    "dim": "\033[2m",
}

ICONS = {
    "INFO": "ℹ️",
    "SUCCESS": "✅",
    "WARN": "⚠️",
    "ERROR": "❌",
    "DEBUG": "🔍",
}

LEVEL_COLOR = {
    "INFO": COLORS["cyan"],
    "SUCCESS": COLORS["green"],
    "WARN": COLORS["yellow"],
    "ERROR": COLORS["red"],
    "DEBUG": COLORS["magenta"],
}


def _default_log_file() -> Path:
    if env_path := os.environ.get("FLOWPILOT_LOG_FILE"):
        return Path(env_path)

    log_dir = Path(os.environ.get("FLOWPILOT_LOG_DIR", "logs"))
    ts = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    return log_dir / f"flowpilot_{ts}.log"


LOG_FILE_PATH = _default_log_file()
_TRACE_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("trace_id", default=None)
_SPAN_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("span_id", default=None)
_SPAN_NAME: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("span_name", default=None)
_REQUEST_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)


class TraceContext:
    """Correlates the log lines of one agent request across modules."""

    def __init__(self, trace_id: str, span_id: str, span_name: str | None = None):
        self.trace_id = trace_id
        self.span_id = span_id
        self.span_name = span_name

    @classmethod
    def create(
        cls, trace_id: str | None = None, span_id: str | None = None, span_name: str | None = None
    ) -> "TraceContext":
        return cls(trace_id or uuid.uuid4().hex, span_id or uuid.uuid4().hex, span_name)

    def child(self, span_name: str | None = None) -> "TraceContext":
        return TraceContext(self.trace_id, uuid.uuid4().hex, span_name or self.span_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "span_name": self.span_name,
        }


def current_trace_context() -> TraceContext | None:
    trace_id = _TRACE_ID.get()
    if not trace_id:
        return None
    return TraceContext(trace_id, _SPAN_ID.get() or uuid.uuid4().hex, _SPAN_NAME.get())


def current_request_id() -> str | None:
    return _REQUEST_ID.get()


def configure_request_logging(request_id: str | None = None) -> contextvars.Token[str | None] | None:
    """Bind ``request_id`` to every record written by :func:`log_event`.

    Returns the contextvar token so the caller can reset it, or ``None`` when no
    id was given.
    """

    if request_id is None:
        return None
    return _REQUEST_ID.set(request_id)


@contextlib.contextmanager
def use_trace_context(context: TraceContext | None):
    if context is None:
        yield None
        return

    token_trace = _TRACE_ID.set(context.trace_id)
    token_span = _SPAN_ID.set(context.span_id)
    token_name = _SPAN_NAME.set(context.span_name)
    try:
        yield context
    finally:
        _TRACE_ID.reset(token_trace)
        _SPAN_ID.reset(token_span)
        _SPAN_NAME.reset(token_name)


@contextlib.contextmanager
def child_span(span_name: str | None = None):
    parent = current_trace_context() or TraceContext.create()
    with use_trace_context(parent.child(span_name=span_name)) as ctx:
        yield ctx


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _format_lines(message: str) -> str:
    lines = message.split("\n")
    if len(lines) <= 1:
        return message
    return ("\n" + " " * 18).join(lines)


def _safe_print(text: str) -> None:
    """Print text while tolerating encoding issues on non-UTF-8 consoles."""

    output = text if text.endswith("\n") else text + "\n"
    try:
        sys.stdout.write(output)
    except UnicodeEncodeError:
        encoding = getattr(sys.stdout, "encoding", None) or "utf-8"
        sys.stdout.write(output.encode(encoding, errors="replace").decode(encoding, errors="replace"))
    sys.stdout.flush()


def console_log(level: str, message: str) -> None:
    level = level.upper()
    color = LEVEL_COLOR.get(level, "")
    icon = ICONS.get(level, "➡️")
    trace = current_trace_context()
    trace_prefix = f" [trace={trace.trace_id} span={trace.span_id}]" if trace else ""
    prefix = f"{color}{icon} [{level:>5}] {_timestamp()}{trace_prefix} |{RESET} "
    _safe_print(prefix + _format_lines(message))


def log_info(*messages: str) -> None:
    """Log informational messages, joining the parts with spaces."""

    message = " ".join(str(part) for part in messages) if messages else ""
    console_log("INFO", message)


def log_success(message: str) -> None:
    console_log("SUCCESS", message)


def log_warn(message: str) -> None:
    console_log("WARN", message)


def log_error(message: str) -> None:
    console_log("ERROR", message)


def log_debug(message: str) -> None:
    console_log("DEBUG", message)


def log_section(title: str, subtitle: str | None = None, char: str = "=") -> None:
    width = min(shutil.get_terminal_size((100, 20)).columns, 100)
    line = char * width
    _safe_print(f"\n{COLORS['dim']}{line}{RESET}")
    console_log("INFO", title)
    if subtitle:
        console_log("DEBUG", subtitle)
    _safe_print(f"{COLORS['dim']}{line}{RESET}\n")


def log_json(label: str, data: Any) -> None:
    try:
        payload = json.dumps(data, ensure_ascii=False, indent=2)
    except (TypeError, ValueError):
        payload = str(data)
    console_log("DEBUG", f"{label}:\n{payload}")


def _stringify_args(args: Any) -> str:
    if args is None:
        return ""
    if isinstance(args, (dict, list)):
        try:
            return json.dumps(args, ensure_ascii=False)
        except TypeError:
            return str(args)
    return str(args)


def log_tool_call(
    source: str,
    tool_name: str,
    *,
    args: Any | None = None,
    tool_call_id: str | None = None,
) -> None:
    """Highlight model tool invocations in the console output."""

    metadata = f" (id={tool_call_id})" if tool_call_id else ""
    args_text = _stringify_args(args)
    args_suffix = f" args={args_text}" if args_text else ""
    tool_name_colored = f"{COLORS['blue']}{tool_name}{RESET}"
    console_log(
        "INFO",
        f"{COLORS['yellow']}🛠️{RESET} [LLM ToolCall] {source}: {tool_name_colored}{metadata}{args_suffix}",
    )


def _persist_record(record: dict[str, Any]) -> None:
    LOG_FILE_PATH.parent.mkdir(parents=True, exist_ok=True)
    with open(LOG_FILE_PATH, "a", encoding="utf-8") as fp:
        fp.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")


def log_event(
    message: str,
    payload: Mapping[str, Any] | None = None,
    *,
    level: str = "INFO",
    request_id: str | None = None,
    tool_name: str | None = None,
    context: TraceContext | None = None,
) -> None:
    """Emit one machine-readable JSON log line.

    Every record carries the timestamp, level, request id, tool name and
    message, plus the active trace context when there is one.
    """

    ctx = context or current_trace_context()
    record: dict[str, Any] = {
        "timestamp": datetime.utcnow().isoformat(),
        "level": level.upper(),
        "request_id": request_id or current_request_id(),
        "tool_name": tool_name,
        "message": message,
    }
    if payload:
        record["payload"] = dict(payload)
        if record["tool_name"] is None:
            record["tool_name"] = payload.get("tool_name")
    if ctx:
        record.update(ctx.to_dict())

    _safe_print(json.dumps(record, ensure_ascii=False, default=str))
    _persist_record(record)


def _serialize_tool_call(tc: Any) -> dict[str, Any]:
    if isinstance(tc, Mapping):
        return dict(tc)

    func = getattr(tc, "function", None)
    return {
        "id": getattr(tc, "id", None),
        "type": getattr(tc, "type", None),
        "function": {
            "name": getattr(func, "name", None) if func else None,
            "arguments": getattr(func, "arguments", None) if func else None,
        },
    }


def _serialize_llm_message(message: Any) -> dict[str, Any]:
    if isinstance(message, Mapping):
        return dict(message)

    payload: dict[str, Any] = {
        "role": getattr(message, "role", None),
        "content": getattr(message, "content", None),
    }
    tool_calls = getattr(message, "tool_calls", None)
    if tool_calls:
        payload["tool_calls"] = [_serialize_tool_call(tc) for tc in tool_calls]
    return payload


def log_llm_message(model: str, message: Any, *, operation: str | None = None) -> None:
    """Print and persist one model message for tracing."""

    serialized = _serialize_llm_message(message)
    role = serialized.get("role") or "assistant"
    content = serialized.get("content")
    console_summary = f"[LLM {operation or model}] ({role})"
    if content:
        console_summary += f" {content}"
    console_log("INFO", console_summary)

    log_event(
        "llm_message",
        {"model": model, "operation": operation or "unknown", "message": serialized},
    )


__all__ = [
    "LOG_FILE_PATH",
    "TraceContext",
    "child_span",
    "configure_request_logging",
    "console_log",
    "current_request_id",
    "current_trace_context",
    "log_debug",
    "log_error",
    "log_event",
    "log_info",
    "log_json",
    "log_llm_message",
    "log_section",
    "log_success",
    "log_tool_call",
    "log_warn",
    "use_trace_context",
]
