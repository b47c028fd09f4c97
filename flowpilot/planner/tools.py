# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Argument models and OpenAI function descriptors for the planner tools."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Type

from pydantic import BaseModel, Field


class AdviseUserArgs(BaseModel):
    message: str = Field(default="", description="Answer, explanation or clarifying question for the user.")
    suggestions: Optional[List[str]] = Field(
        default=None, description="Optional short follow-up suggestions, rendered as bullet points."
    )


class ValidateWorkflowArgs(BaseModel):
    graph: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Complete candidate workflow: {\"nodes\": [...], \"connections\": [...]}.",
    )


class BuildWorkflowArgs(BaseModel):
    graph: Optional[Dict[str, Any]] = Field(
        default=None,
        description="The FULL updated workflow: {\"nodes\": [...], \"connections\": [...]}.",
    )
    message: str = Field(default="", description="Short explanation of what was created or changed.")


class ExecutionLogsArgs(BaseModel):
    workflowId: Optional[str] = Field(
        default=None, description="Workflow id; defaults to the workflow being edited."
    )


def _strip_additional_properties(schema: Any) -> Any:
    if isinstance(schema, MutableMapping):
        return {k: _strip_additional_properties(v) for k, v in schema.items() if k != "additionalProperties"}
    if isinstance(schema, list):
        return [_strip_additional_properties(item) for item in schema]
    return schema


def build_parameter_schema(model: Type[BaseModel]) -> Mapping[str, Any]:
    """JSON schema of ``model`` without ``title``/``additionalProperties`` noise."""

    schema = dict(model.model_json_schema())
    schema.pop("title", None)
    properties = schema.get("properties")
    if isinstance(properties, dict):
        schema["properties"] = {
            name: {k: v for k, v in prop.items() if k != "title"} for name, prop in properties.items()
        }
    return _strip_additional_properties(schema)


def build_tool_descriptor(name: str, description: str, model: Type[BaseModel]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": build_parameter_schema(model),
        },
    }


__all__ = [
    "AdviseUserArgs",
    "BuildWorkflowArgs",
    "ExecutionLogsArgs",
    "ValidateWorkflowArgs",
    "build_parameter_schema",
    "build_tool_descriptor",
]
