# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Run one workflow-agent request from the command line.

Example::

    python run_agent.py --request "Every morning fetch the weather and summarize it" \
        --workflow current.json --output updated.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from flowpilot.config import MAX_TURNS, NODE_TYPES_FILE, OPENAI_MODEL
from flowpilot.execution_store import InMemoryExecutionStore
from flowpilot.logging_utils import log_info, log_json, log_warn
from flowpilot.node_registry import build_default_node_registry
from flowpilot.planner import AgentLoop, AgentRequest, OpenAIToolCallingClient, build_default_tool_registry


def _load_json(path: Path | None):
    if path is None:
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create or edit a workflow through the LLM agent.")
    parser.add_argument("--request", required=True, help="自然语言需求")
    parser.add_argument("--workflow", type=Path, default=None, help="当前 workflow JSON（可选）")
    parser.add_argument("--output", type=Path, default=Path("workflow_output.json"), help="结果输出路径")
    parser.add_argument("--execution-context", type=Path, default=None, help="最近一次执行上下文 JSON（可选）")
    parser.add_argument("--node-types", type=str, default=NODE_TYPES_FILE, help="节点类型注册表 JSON 路径")
    parser.add_argument("--model", type=str, default=OPENAI_MODEL, help="OpenAI 模型名称")
    parser.add_argument("--max-turns", type=int, default=MAX_TURNS, help="Agent 最大轮数")
    args = parser.parse_args(argv)

    try:
        existing = _load_json(args.workflow)
        execution_context = _load_json(args.execution_context)
    except FileNotFoundError as exc:
        print(f"找不到输入文件: {exc.filename}", file=sys.stderr)
        return 2
    except json.JSONDecodeError as exc:
        print(f"输入文件不是合法 JSON: {exc}", file=sys.stderr)
        return 2

    node_registry = build_default_node_registry(args.node_types)
    loop = AgentLoop(
        OpenAIToolCallingClient(model=args.model),
        build_default_tool_registry(node_registry, InMemoryExecutionStore()),
        node_registry,
        max_turns=args.max_turns,
    )
    response = asyncio.run(
        loop.run(
            AgentRequest(
                request=args.request,
                existing_graph=existing,
                execution_context=execution_context,
            )
        )
    )

    log_info(response.message)
    if response.missing_node_types:
        log_warn(f"以下节点类型尚未安装：{', '.join(response.missing_node_types)}")

    if response.graph is None:
        log_info(f"工作流未改变（status={response.status}），不写入输出文件。")
        return 0

    args.output.write_text(json.dumps(response.graph.model_dump(), ensure_ascii=False, indent=2), encoding="utf-8")
    log_json("workflow", response.graph.model_dump())
    log_info(f"已写入 {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
