# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Runtime settings for FlowPilot, read once from the environment."""

import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o")
TEMPERATURE = _float_env("FLOWPILOT_TEMPERATURE", 0.2)

# Agent loop bounds
MAX_TURNS = _int_env("FLOWPILOT_MAX_TURNS", 8)
HISTORY_WINDOW = _int_env("FLOWPILOT_HISTORY_WINDOW", 10)

NODE_TYPES_FILE = os.environ.get("FLOWPILOT_NODE_TYPES_FILE")


__all__ = [
    "HISTORY_WINDOW",
    "MAX_TURNS",
    "NODE_TYPES_FILE",
    "OPENAI_MODEL",
    "TEMPERATURE",
]
