# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Prompt assembly for the workflow agent.

The node registry and the existing workflow are compressed before they are
rendered into the prompt so large installations and big code parameters do
not crowd out the conversation.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Sequence

from jinja2 import Environment, StrictUndefined, Template

from flowpilot.models import WorkflowGraph
from flowpilot.planner.conversation import ConversationWindow

MAX_PARAM_CHARS = 500
TRUNCATION_MARKER = "...[TRUNCATED_FOR_AI]"
MAX_OPTION_VALUES = 5
MAX_DEFAULT_CHARS = 20
EXECUTION_LOG_TAIL = 5

SYSTEM_PROMPT_TEMPLATE = """\
You are an expert automation engineer. Your goal is to help users by either creating/modifying workflows OR providing advice.

### AVAILABLE TOOLS
1. **build_workflow**: use it when the user asks to create, modify, fix, or extend a workflow. Always pass the FULL workflow, never a diff.
2. **advise_user**: answer questions, explain concepts, or ask SHORT clarifying questions (bullet points) when the request is ambiguous.
3. **validate_workflow**: run it BEFORE build_workflow for complex workflows (AI agents, several service nodes) and fix every error it reports.
4. **get_latest_execution_logs**: fetch the latest run's errors when the user asks about failures. Never guess an error you have not seen.

### AVAILABLE NODES
{{ node_context }}

### SCHEMA KEY
- id: node type (use it as "type")
- name: display name
- out: output handles when not just "main"; model nodes output "modelService", memory nodes "memoryService", tool nodes "toolService"
- svcIn: service inputs (n = input name used as targetInput, req = required)
- props: parameters (n = name, t = type, req = required, o = allowed option values, d = default)

### SERVICE CONNECTIONS
Service nodes connect with matching port names on BOTH ends, e.g. sourceOutput="modelService" -> targetInput="modelService".
{% for node_type, inputs in service_inputs.items() %}
- '{{ node_type }}' requires {{ inputs.required | join(", ") or "nothing" }}{% if inputs.optional %} and accepts {{ inputs.optional | join(", ") }}{% endif %}.
{% endfor %}

### RULES
1. Use unique node ids (e.g. "trigger_1", "action_2") and reference them in "sourceNodeId"/"targetNodeId".
2. Every workflow MUST start with a trigger node; default to 'manual-trigger'.
3. Set every required parameter; for options use only the listed values.
4. Do not invent node types that are not listed above unless the user insists; they will be reported as missing.
5. Keep "name", "type", "parameters" and "position" as top-level node keys.
"""

USER_PROMPT_TEMPLATE = """\
{% if history %}
### CONVERSATION HISTORY
{{ history }}

{% endif %}
{% if execution_block %}
{{ execution_block }}
{% endif %}
### CURRENT REQUEST
User Request: "{{ request }}"

{% if workflow_json %}
CURRENT WORKFLOW JSON:
{{ workflow_json }}

INSTRUCTION: Modify the above workflow to satisfy the user request. Preserve existing nodes unless they strictly conflict with the request. Return the FULL updated workflow JSON.
{% else %}
INSTRUCTION: Create a BRAND NEW workflow from scratch.
{% endif %}
"""


@lru_cache(maxsize=1)
def get_prompt_env() -> Environment:
    """Jinja environment shared by all prompt templates.

    Autoescaping is off (prompts are plain text) and undefined variables
    raise so a template typo never silently drops context.
    """

    return Environment(
        autoescape=False,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )


@lru_cache(maxsize=None)
def _template(source: str) -> Template:
    return get_prompt_env().from_string(source)


def _option_values(options: Any) -> List[Any]:
    if not isinstance(options, list):
        return []
    values = [o.get("value") if isinstance(o, Mapping) else o for o in options]
    return values[:MAX_OPTION_VALUES]


def _summarize_property(prop: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    type_options = prop.get("typeOptions") if isinstance(prop.get("typeOptions"), Mapping) else {}
    if type_options.get("password") or prop.get("type") == "hidden":
        return None

    summary: Dict[str, Any] = {"n": prop.get("name"), "t": prop.get("type")}
    if prop.get("required"):
        summary["req"] = True
    values = _option_values(prop.get("options"))
    if values:
        summary["o"] = values
    if "default" in prop and prop["default"] is not None and len(str(prop["default"])) < MAX_DEFAULT_CHARS:
        summary["d"] = prop["default"]
    return summary


def summarize_node_type(node_type: Mapping[str, Any]) -> Dict[str, Any]:
    summary: Dict[str, Any] = {
        "id": node_type.get("identifier"),
        "name": node_type.get("displayName") or node_type.get("identifier"),
    }
    outputs = [o for o in node_type.get("outputs") or [] if isinstance(o, str)]
    if outputs and outputs != ["main"]:
        summary["out"] = outputs
    service_inputs = [
        {"n": entry.get("name"), **({"req": True} if entry.get("required") else {})}
        for entry in node_type.get("serviceInputs") or []
        if isinstance(entry, Mapping) and entry.get("name")
    ]
    if service_inputs:
        summary["svcIn"] = service_inputs

    props = []
    for prop in node_type.get("properties") or []:
        if not isinstance(prop, Mapping):
            continue
        prop_summary = _summarize_property(prop)
        if prop_summary is not None:
            props.append(prop_summary)
    summary["props"] = props
    return summary


def build_node_context(node_types: Optional[Sequence[Mapping[str, Any]]]) -> str:
    """Compact JSON listing of installed node types for the system prompt."""

    if node_types is None:
        return "(node registry unavailable; only use node types the user explicitly names)"
    return json.dumps([summarize_node_type(nt) for nt in node_types], ensure_ascii=False)


def _truncate_parameters(parameters: Mapping[str, Any]) -> Dict[str, Any]:
    truncated: Dict[str, Any] = {}
    for key, value in parameters.items():
        if isinstance(value, str) and len(value) > MAX_PARAM_CHARS:
            truncated[key] = value[:MAX_PARAM_CHARS] + TRUNCATION_MARKER
        else:
            truncated[key] = value
    return truncated


def minify_workflow_for_ai(graph: WorkflowGraph) -> Dict[str, Any]:
    """Drop layout fields and cut oversized string parameters."""

    return {
        "nodes": [
            {
                "id": node.id,
                "type": node.type,
                "name": node.name,
                "parameters": _truncate_parameters(node.parameters),
            }
            for node in graph.nodes
        ],
        "connections": [conn.model_dump() for conn in graph.connections],
    }


def build_execution_context(execution_context: Optional[Mapping[str, Any]]) -> str:
    if not execution_context:
        return ""

    status = execution_context.get("lastRunStatus") or "Unknown"
    lines = ["### LAST EXECUTION CONTEXT", f"Status: {status}"]

    errors = execution_context.get("errors") or []
    if isinstance(errors, Mapping):
        errors = [{"nodeId": node_id, "error": err} for node_id, err in errors.items()]
    error_lines = [
        f"- Node {e.get('nodeId')}: {e.get('error')}" for e in errors if isinstance(e, Mapping)
    ]
    if error_lines:
        lines.append("Errors:")
        lines.extend(error_lines)

    logs = [str(line) for line in execution_context.get("logs") or []]
    if logs:
        lines.append("Recent Logs:")
        lines.extend(logs[-EXECUTION_LOG_TAIL:])
    elif status == "error" and not error_lines:
        lines.append(
            "(No specific error logs found. You can use 'get_latest_execution_logs' to investigate deeply.)"
        )
    return "\n".join(lines) + "\n"


def render_system_prompt(
    node_types: Optional[Sequence[Mapping[str, Any]]],
    service_inputs: Optional[Mapping[str, Any]] = None,
) -> str:
    inputs = {
        name: {"required": list(entry.required), "optional": list(entry.optional)}
        for name, entry in (service_inputs or {}).items()
    }
    return _template(SYSTEM_PROMPT_TEMPLATE).render(
        node_context=build_node_context(node_types),
        service_inputs=inputs,
    )


def render_user_prompt(
    request: str,
    existing_graph: Optional[WorkflowGraph] = None,
    conversation: Optional[ConversationWindow] = None,
    execution_context: Optional[Mapping[str, Any]] = None,
) -> str:
    workflow_json = ""
    if existing_graph is not None:
        workflow_json = json.dumps(minify_workflow_for_ai(existing_graph), ensure_ascii=False)
    return _template(USER_PROMPT_TEMPLATE).render(
        history=conversation.render() if conversation is not None else "",
        execution_block=build_execution_context(execution_context),
        request=request,
        workflow_json=workflow_json,
    )


__all__ = [
    "MAX_PARAM_CHARS",
    "TRUNCATION_MARKER",
    "build_execution_context",
    "build_node_context",
    "get_prompt_env",
    "minify_workflow_for_ai",
    "render_system_prompt",
    "render_user_prompt",
    "summarize_node_type",
]
