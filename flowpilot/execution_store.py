# Author: Zhongkai Fu (fuzhongkai@gmail.com)
# License: BSD 3-Clause License

"""Read access to past workflow executions, used for error diagnosis."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol


class ExecutionStoreUnavailable(RuntimeError):
    """The execution-record store could not be queried."""


@dataclass
class NodeRun:
    node_id: str
    status: str
    error: Optional[str] = None


@dataclass
class ExecutionRecord:
    """Snapshot of one workflow run as persisted by the execution engine."""

    workflow_id: str
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    node_runs: List[NodeRun] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "node_runs": [
                {"node_id": r.node_id, "status": r.status, "error": r.error} for r in self.node_runs
            ],
        }


class ExecutionStore(Protocol):
    async def find_latest_execution(self, workflow_id: str) -> Optional[ExecutionRecord]:
        ...


class InMemoryExecutionStore:
    """In-memory bookkeeping of execution records keyed by workflow id."""

    def __init__(self) -> None:
        self._records: Dict[str, List[ExecutionRecord]] = {}

    def add(self, record: ExecutionRecord) -> None:
        self._records.setdefault(record.workflow_id, []).append(record)

    async def find_latest_execution(self, workflow_id: str) -> Optional[ExecutionRecord]:
        records = self._records.get(workflow_id) or []
        if not records:
            return None
        # 没有开始时间的记录按插入顺序兜底。
        return max(
            enumerate(records),
            key=lambda item: (item[1].started_at or datetime.min, item[0]),
        )[1]


__all__ = [
    "ExecutionRecord",
    "ExecutionStore",
    "ExecutionStoreUnavailable",
    "InMemoryExecutionStore",
    "NodeRun",
]
