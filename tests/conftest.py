"""
Shared fakes: an in-process agent stream client and query executor so tests
never reach AWS or an HTTP query service.
"""

import threading
from typing import Iterator

import pytest

from chatgate.agent.client import AgentTarget
from chatgate.agent.gateway import AgentKind, StreamingInvocationGateway
from chatgate.services.chart_service import ChartRenderer
from chatgate.services.orchestrator import ChatOrchestrator

QUERY_TARGET = AgentTarget("query-agent", "query-alias")
DEFECT_TARGET = AgentTarget("defect-agent", "defect-alias")
TARGETS = {AgentKind.QUERY: QUERY_TARGET, AgentKind.DEFECT: DEFECT_TARGET}


class FakeAgentClient:
    """Replays canned chunk lists per agent id; records every call."""

    def __init__(self, replies: dict[str, list[str]] | None = None) -> None:
        self.replies = replies or {}
        self.calls: list[dict] = []
        self.error: Exception | None = None
        self.error_after: int = 0
        self.block: threading.Event | None = None

    def stream(self, target, prompt, session_id, session_attributes) -> Iterator[str]:
        self.calls.append(
            {
                "agent_id": target.agent_id,
                "prompt": prompt,
                "session_id": session_id,
                "attributes": dict(session_attributes),
            }
        )
        if self.block is not None:
            self.block.wait(timeout=5)
        for i, chunk in enumerate(self.replies.get(target.agent_id, [])):
            if self.error is not None and i == self.error_after:
                raise self.error
            yield chunk
        if self.error is not None:
            raise self.error


class FakeQueryExecutor:
    def __init__(self, rows: list[dict[str, str]] | None = None, error: Exception | None = None) -> None:
        self.rows = rows or []
        self.error = error
        self.queries: list[str] = []

    async def execute(self, query: str) -> list[dict[str, str]]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.rows)


def make_rows(n: int) -> list[dict[str, str]]:
    return [
        {"key": f"BUG-{i}", "status": "Open" if i % 2 else "Closed", "priority": "High"}
        for i in range(1, n + 1)
    ]


@pytest.fixture
def agent_client() -> FakeAgentClient:
    return FakeAgentClient(
        {
            "query-agent": ["```sql\nSELECT key, status ", "FROM issues;\n```"],
            "defect-agent": ["Matching Defect: BUG-7\n", "Root Cause: race\n", "Resolution: lock"],
        }
    )


@pytest.fixture
def query_executor() -> FakeQueryExecutor:
    return FakeQueryExecutor(make_rows(3))


@pytest.fixture
def orchestrator(agent_client, query_executor, tmp_path) -> ChatOrchestrator:
    gateway = StreamingInvocationGateway(agent_client, TARGETS, deadline=5.0, max_workers=4)
    orch = ChatOrchestrator(
        gateway=gateway,
        executor=query_executor,
        charts=ChartRenderer(tmp_path / "charts"),
    )
    yield orch
    gateway.close()
