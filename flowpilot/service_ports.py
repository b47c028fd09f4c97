# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Service port contracts: which node types produce or consume service handles.

A service port carries a non-data dependency (a language-model handle, a
memory backend, a tool) from a provider node to a consumer node such as an
AI agent. The typing is nominal: a ``toolService`` output never satisfies a
``memoryService`` input, while any two ``modelService`` producers are
interchangeable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

MODEL_SERVICE = "modelService"
MEMORY_SERVICE = "memoryService"
TOOL_SERVICE = "toolService"

TOOL_TYPE_SUFFIX = "-tool"
SERVICE_PORT_SUFFIX = "Service"


@dataclass(frozen=True)
class ServiceInputs:
    required: Tuple[str, ...] = ()
    optional: Tuple[str, ...] = ()

    def accepts(self, service_type: str) -> bool:
        return service_type in self.required or service_type in self.optional


@dataclass
class ServicePortContract:
    outputs: Dict[str, str] = field(default_factory=dict)
    inputs: Dict[str, ServiceInputs] = field(default_factory=dict)

    def service_output(self, node_type: str) -> Optional[str]:
        """Service type emitted by ``node_type``, or ``None`` for data nodes."""

        if node_type in self.outputs:
            return self.outputs[node_type]
        if node_type.endswith(TOOL_TYPE_SUFFIX):
            return TOOL_SERVICE
        return None

    def is_service_node(self, node_type: str) -> bool:
        return self.service_output(node_type) is not None

    def service_inputs(self, node_type: str) -> ServiceInputs:
        return self.inputs.get(node_type, ServiceInputs())

    def required_inputs(self, node_type: str) -> Tuple[str, ...]:
        return self.service_inputs(node_type).required

    def extended_with(self, node_types: Iterable[Mapping[str, Any]]) -> "ServicePortContract":
        """Return a copy enriched with ports declared by node-type descriptors.

        A descriptor contributes an output when one of its ``outputs`` ends in
        ``Service`` and contributes inputs through ``serviceInputs`` entries of
        the form ``{"name": ..., "required": bool}``. Entries of the static
        table win over descriptor declarations.
        """

        outputs = dict(self.outputs)
        inputs = dict(self.inputs)
        for descriptor in node_types:
            identifier = descriptor.get("identifier")
            if not isinstance(identifier, str):
                continue

            declared_outputs = descriptor.get("outputs") or []
            service_outputs = [
                o for o in declared_outputs if isinstance(o, str) and o.endswith(SERVICE_PORT_SUFFIX)
            ]
            if service_outputs and identifier not in outputs:
                outputs[identifier] = service_outputs[0]

            declared_inputs = descriptor.get("serviceInputs") or []
            if declared_inputs and identifier not in inputs:
                required: List[str] = []
                optional: List[str] = []
                for entry in declared_inputs:
                    if not isinstance(entry, Mapping) or not isinstance(entry.get("name"), str):
                        continue
                    (required if entry.get("required") else optional).append(entry["name"])
                inputs[identifier] = ServiceInputs(required=tuple(required), optional=tuple(optional))

        return ServicePortContract(outputs=outputs, inputs=inputs)


DEFAULT_SERVICE_CONTRACT = ServicePortContract(
    outputs={
        "openai-model": MODEL_SERVICE,
        "anthropic-model": MODEL_SERVICE,
        "gemini-model": MODEL_SERVICE,
        "ollama-model": MODEL_SERVICE,
        "buffer-memory": MEMORY_SERVICE,
        "window-memory": MEMORY_SERVICE,
        "redis-memory": MEMORY_SERVICE,
    },
    inputs={
        "ai-agent": ServiceInputs(
            required=(MODEL_SERVICE,),
            optional=(MEMORY_SERVICE, TOOL_SERVICE),
        ),
    },
)


def is_trigger_type(node_type: str) -> bool:
    """Trigger-class nodes start a workflow (``manual-trigger``, ``webhook-trigger`` ...)."""

    return "trigger" in node_type.lower()


__all__ = [
    "DEFAULT_SERVICE_CONTRACT",
    "MEMORY_SERVICE",
    "MODEL_SERVICE",
    "ServiceInputs",
    "ServicePortContract",
    "TOOL_SERVICE",
    "is_trigger_type",
]
