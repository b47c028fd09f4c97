# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Standalone workflow graph validation tool.

Runs the same structural checks the agent's ``validate_workflow`` tool uses
(shape, trigger, service ports, references, orphans, required parameters)
against a workflow JSON file and prints the findings.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Iterable

from flowpilot.config import NODE_TYPES_FILE
from flowpilot.models import ValidationIssue
from flowpilot.node_registry import build_default_node_registry
from flowpilot.verification import validate_workflow_graph


def _format_issues(issues: Iterable[ValidationIssue]) -> str:
    lines = []
    for idx, issue in enumerate(issues, start=1):
        location_bits = []
        if issue.node_id:
            location_bits.append(f"node={issue.node_id}")
        if issue.field:
            location_bits.append(f"field={issue.field}")
        location = f" ({', '.join(location_bits)})" if location_bits else ""
        lines.append(f"{idx}. [{issue.code}]{location} {issue.message}")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate a workflow graph JSON file.")
    parser.add_argument("workflow", type=Path, help="Path to workflow JSON file")
    parser.add_argument(
        "--node-types",
        type=str,
        default=NODE_TYPES_FILE,
        help="节点类型注册表 JSON 路径（默认使用内置注册表）",
    )
    args = parser.parse_args(argv)

    try:
        workflow_raw = json.loads(args.workflow.read_text(encoding="utf-8"))
    except FileNotFoundError:
        print(f"找不到 workflow 文件: {args.workflow}", file=sys.stderr)
        return 2
    except json.JSONDecodeError as exc:
        print(f"workflow 文件不是合法 JSON: {exc}", file=sys.stderr)
        return 2

    report = validate_workflow_graph(workflow_raw, node_registry=build_default_node_registry(args.node_types))
    if report.warnings:
        print("警告：", file=sys.stderr)
        print(_format_issues(report.warnings), file=sys.stderr)

    if report.errors:
        print("校验未通过，发现以下问题：", file=sys.stderr)
        print(_format_issues(report.errors), file=sys.stderr)
        return 1

    print("workflow 校验通过。")
    return 0


if __name__ == "__main__":
    sys.exit(main())
