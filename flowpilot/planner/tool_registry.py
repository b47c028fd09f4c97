# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Closed set of planner tools and the registry the agent loop dispatches through."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Type, Union

from pydantic import BaseModel

from flowpilot.logging_utils import log_warn
from flowpilot.models import WorkflowGraph
from flowpilot.planner.tools import build_tool_descriptor


class ToolName(str, Enum):
    BUILD_WORKFLOW = "build_workflow"
    ADVISE_USER = "advise_user"
    VALIDATE_WORKFLOW = "validate_workflow"
    GET_LATEST_EXECUTION_LOGS = "get_latest_execution_logs"

    @classmethod
    def parse(cls, raw: Any) -> Optional["ToolName"]:
        """Map a model-supplied name onto the enum; ``None`` when unrecognized."""

        if isinstance(raw, cls):
            return raw
        try:
            return cls(raw)
        except ValueError:
            return None


@dataclass
class ToolContext:
    """Per-request data handed to every tool invocation."""

    request: str
    current_workflow: Optional[WorkflowGraph] = None
    workflow_id: Optional[str] = None
    execution_context: Optional[Mapping[str, Any]] = None


class ToolHandler(ABC):
    """Common interface of the planner tools.

    ``is_final`` handlers end the agent loop and return an
    :class:`~flowpilot.models.AgentResponse`; the others return a JSON-able
    mapping that is fed back to the model.
    """

    name: ClassVar[ToolName]
    is_final: ClassVar[bool] = False
    description: ClassVar[str] = ""
    args_model: ClassVar[Type[BaseModel]]

    def descriptor(self) -> Dict[str, Any]:
        return build_tool_descriptor(self.name.value, self.description, self.args_model)

    def parse_args(self, args: Optional[Mapping[str, Any]]) -> Any:
        return self.args_model.model_validate(dict(args or {}))

    @abstractmethod
    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> Any:
        ...


class ToolRegistry:
    """Flat name -> handler map, built once at startup and read-only afterwards."""

    def __init__(self, handlers: Iterable[ToolHandler] = ()) -> None:
        self._handlers: Dict[ToolName, ToolHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: ToolHandler) -> None:
        if handler.name in self._handlers:
            log_warn(f"[ToolRegistry] 工具 {handler.name.value} 已注册，将被覆盖。")
        self._handlers[handler.name] = handler

    def get(self, name: Union[str, ToolName]) -> Optional[ToolHandler]:
        key = ToolName.parse(name)
        if key is None:
            return None
        return self._handlers.get(key)

    def has(self, name: Union[str, ToolName]) -> bool:
        return self.get(name) is not None

    def is_final_tool(self, name: Union[str, ToolName]) -> bool:
        handler = self.get(name)
        return bool(handler and handler.is_final)

    def names(self) -> List[str]:
        return [name.value for name in self._handlers]

    def descriptors(self) -> List[Dict[str, Any]]:
        return [handler.descriptor() for handler in self._handlers.values()]


__all__ = ["ToolContext", "ToolHandler", "ToolName", "ToolRegistry"]
