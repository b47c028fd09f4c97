# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Conversation history for chat-style workflow editing."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from flowpilot.config import HISTORY_WINDOW
from flowpilot.logging_utils import log_debug

ROLES = ("system", "user", "assistant")
MAX_STORED_MESSAGES = 50


@dataclass
class ConversationEntry:
    role: str
    content: str
    meta: Optional[Dict[str, Any]] = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unsupported conversation role '{self.role}', expected one of {ROLES}")
        if not isinstance(self.content, str):
            raise ValueError("Conversation content must be a string")

    @classmethod
    def model_validate(cls, data: Any) -> "ConversationEntry":
        if isinstance(data, cls):
            return data
        if not isinstance(data, Mapping):
            raise ValueError("Conversation entry must be an object with 'role' and 'content'")
        meta = data.get("meta")
        return cls(
            role=str(data.get("role")),
            content=data.get("content") if isinstance(data.get("content"), str) else str(data.get("content") or ""),
            meta=dict(meta) if isinstance(meta, Mapping) else None,
        )

    def model_dump(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.meta:
            data["meta"] = dict(self.meta)
        return data


class ConversationWindow:
    """Ordered history, of which only the last ``max_entries`` reach the model."""

    def __init__(self, entries: Iterable[ConversationEntry] = (), max_entries: int = HISTORY_WINDOW) -> None:
        if max_entries < 0:
            raise ValueError("max_entries must be >= 0")
        self.max_entries = max_entries
        self._entries: List[ConversationEntry] = list(entries)

    @classmethod
    def from_history(cls, history: Optional[Iterable[Any]], max_entries: int = HISTORY_WINDOW) -> "ConversationWindow":
        return cls([ConversationEntry.model_validate(item) for item in history or []], max_entries=max_entries)

    def append(self, role: str, content: str, meta: Optional[Dict[str, Any]] = None) -> ConversationEntry:
        entry = ConversationEntry(role=role, content=content, meta=meta)
        self._entries.append(entry)
        return entry

    def tail(self) -> List[ConversationEntry]:
        if self.max_entries == 0:
            return []
        return self._entries[-self.max_entries :]

    def __len__(self) -> int:
        return len(self._entries)

    def render(self) -> str:
        """``ROLE: content`` lines for the tail, as shown to the model."""

        return "\n".join(f"{e.role.upper()}: {e.content}" for e in self.tail())


class ConversationStore(Protocol):
    def append(self, session_id: str, role: str, content: str, meta: Optional[Dict[str, Any]] = None) -> None:
        ...

    def get_tail(self, session_id: str, n: int) -> List[ConversationEntry]:
        ...


class InMemoryConversationStore:
    """Per-session message lists, pruned to ``max_messages``.

    A leading system message survives pruning; everything else is dropped
    oldest first.
    """

    def __init__(self, max_messages: int = MAX_STORED_MESSAGES) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be >= 1")
        self.max_messages = max_messages
        self._sessions: Dict[str, List[ConversationEntry]] = {}

    def append(self, session_id: str, role: str, content: str, meta: Optional[Dict[str, Any]] = None) -> None:
        messages = self._sessions.setdefault(session_id, [])
        messages.append(ConversationEntry(role=role, content=content, meta=meta))
        self._prune(session_id)

    def _prune(self, session_id: str) -> None:
        messages = self._sessions[session_id]
        if len(messages) <= self.max_messages:
            return
        system = messages[0] if messages[0].role == "system" else None
        if system is not None:
            kept = [system] + messages[-(self.max_messages - 1) :] if self.max_messages > 1 else [system]
        else:
            kept = messages[-self.max_messages :]
        log_debug(f"[ConversationStore] 会话 {session_id} 裁剪 {len(messages) - len(kept)} 条历史消息")
        self._sessions[session_id] = kept

    def get_tail(self, session_id: str, n: int) -> List[ConversationEntry]:
        messages = self._sessions.get(session_id) or []
        if n <= 0:
            return []
        return list(messages[-n:])

    def get_all(self, session_id: str) -> List[ConversationEntry]:
        return list(self._sessions.get(session_id) or [])

    def clear(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


__all__ = [
    "ConversationEntry",
    "ConversationStore",
    "ConversationWindow",
    "InMemoryConversationStore",
    "MAX_STORED_MESSAGES",
]
