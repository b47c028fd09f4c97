# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Node-type registry clients.

The registry lists the installable node types together with their parameter
definitions. Callers must tolerate it being unreachable, so every
implementation reports failures as :class:`NodeTypeRegistryUnavailable`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from flowpilot.logging_utils import log_warn

_DEFAULT_NODE_TYPES_FILE = Path(__file__).resolve().parent / "data" / "node_types.json"


class NodeTypeRegistryUnavailable(RuntimeError):
    """The node-type registry could not be queried."""


class NodeTypeRegistry(Protocol):
    def list_node_types(self) -> Sequence[Mapping[str, Any]]:
        ...


def _validate_node_type(node_type: Any, index: int) -> Dict[str, Any]:
    if not isinstance(node_type, Mapping):
        raise ValueError(f"Node type at index {index} must be a mapping, got {type(node_type).__name__}")

    normalized = dict(node_type)
    identifier = normalized.get("identifier")
    if not isinstance(identifier, str) or not identifier.strip():
        raise ValueError(f"Node type at index {index} is missing required field 'identifier' or it is empty")

    normalized.setdefault("displayName", identifier)
    properties = normalized.get("properties", [])
    if not isinstance(properties, list):
        raise ValueError(f"Node type at index {index} (identifier='{identifier}') must set properties as a list")

    for prop_idx, prop in enumerate(properties):
        if not isinstance(prop, Mapping) or not isinstance(prop.get("name"), str):
            raise ValueError(
                f"Node type '{identifier}' has an invalid property at index {prop_idx}: a 'name' is required"
            )
    normalized["properties"] = [dict(p) for p in properties]
    return normalized


def validate_node_types(raw_node_types: Iterable[Any]) -> List[Dict[str, Any]]:
    """Validate and normalize node-type descriptors, rejecting duplicates."""

    validated: List[Dict[str, Any]] = []
    seen: set[str] = set()
    for idx, raw in enumerate(raw_node_types):
        node_type = _validate_node_type(raw, idx)
        identifier = node_type["identifier"]
        if identifier in seen:
            raise ValueError(f"Duplicate node type '{identifier}' found at index {idx}")
        seen.add(identifier)
        validated.append(node_type)
    return validated


def load_node_types_from_path(path: Path = _DEFAULT_NODE_TYPES_FILE) -> List[Dict[str, Any]]:
    with Path(path).open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"Node type registry file {path} must contain a list of node types")
    return validate_node_types(data)


class StaticNodeTypeRegistry:
    """Registry backed by an in-memory list of descriptors."""

    def __init__(self, node_types: Iterable[Mapping[str, Any]]):
        self._node_types = validate_node_types(node_types)

    def list_node_types(self) -> List[Dict[str, Any]]:
        return list(self._node_types)


class FileNodeTypeRegistry:
    """Registry that re-reads a JSON file on every query."""

    def __init__(self, path: Path | str = _DEFAULT_NODE_TYPES_FILE):
        self.path = Path(path)

    def list_node_types(self) -> List[Dict[str, Any]]:
        try:
            return load_node_types_from_path(self.path)
        except (OSError, ValueError) as exc:
            raise NodeTypeRegistryUnavailable(f"cannot read node types from {self.path}: {exc}") from exc


def build_default_node_registry(path: Optional[str] = None) -> FileNodeTypeRegistry:
    return FileNodeTypeRegistry(path or _DEFAULT_NODE_TYPES_FILE)


def fetch_node_types_or_none(
    registry: Optional[NodeTypeRegistry], source: str = "registry"
) -> Optional[List[Mapping[str, Any]]]:
    """List node types, or ``None`` (logged) when the registry cannot be reached."""

    if registry is None:
        return None
    try:
        return list(registry.list_node_types())
    except Exception as exc:  # noqa: BLE001
        log_warn(f"[{source}] 节点类型注册表不可用，已降级处理：{exc}")
        return None


def index_node_types(node_types: Iterable[Mapping[str, Any]]) -> Dict[str, Mapping[str, Any]]:
    return {str(nt.get("identifier")): nt for nt in node_types if isinstance(nt, Mapping)}


__all__ = [
    "FileNodeTypeRegistry",
    "NodeTypeRegistry",
    "NodeTypeRegistryUnavailable",
    "StaticNodeTypeRegistry",
    "build_default_node_registry",
    "fetch_node_types_or_none",
    "index_node_types",
    "load_node_types_from_path",
    "validate_node_types",
]
