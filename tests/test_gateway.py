"""
Tests for the streaming invocation gateway and its accumulator state machine.
"""

import asyncio
import threading
from unittest.mock import patch

import pytest

from chatgate.agent.client import BedrockAgentClient
from chatgate.agent.gateway import (
    AgentKind,
    StreamAccumulator,
    StreamingInvocationGateway,
    StreamState,
    empty_response_text,
)
from chatgate.core.errors import UpstreamError, UpstreamTimeout
from conftest import TARGETS, FakeAgentClient


def _gateway(client: FakeAgentClient, deadline: float = 5.0) -> StreamingInvocationGateway:
    return StreamingInvocationGateway(client, TARGETS, deadline=deadline, max_workers=2)


class TestStreamAccumulator:
    def test_complete_keeps_buffer(self) -> None:
        acc = StreamAccumulator()
        assert acc.feed("Hello, ")
        assert acc.feed("world ")
        assert acc.complete()
        assert acc.state is StreamState.COMPLETED
        assert acc.text == "Hello, world"

    def test_failure_discards_partial_content(self) -> None:
        acc = StreamAccumulator()
        acc.feed("partial")
        assert acc.fail(RuntimeError("boom"))
        assert acc.state is StreamState.FAILED
        assert acc.text == ""

    def test_terminal_states_are_final(self) -> None:
        acc = StreamAccumulator()
        assert acc.time_out()
        assert acc.feed("late chunk") is False
        assert acc.complete() is False
        assert acc.fail(RuntimeError("late")) is False
        assert acc.state is StreamState.TIMED_OUT


class TestGateway:
    def test_concatenates_chunks_in_order(self, agent_client: FakeAgentClient) -> None:
        gateway = _gateway(agent_client)
        try:
            answer = asyncio.run(gateway.invoke("defect: crash", "sess-1", AgentKind.DEFECT))
        finally:
            gateway.close()
        assert answer == "Matching Defect: BUG-7\nRoot Cause: race\nResolution: lock"
        call = agent_client.calls[0]
        assert call["agent_id"] == "defect-agent"
        assert call["session_id"] == "sess-1"
        assert call["attributes"] == {"session_id": "sess-1"}

    def test_empty_stream_returns_sentinel(self) -> None:
        client = FakeAgentClient({"query-agent": ["  ", "\n"]})
        gateway = _gateway(client)
        try:
            answer = asyncio.run(gateway.invoke("q", "s", AgentKind.QUERY))
        finally:
            gateway.close()
        assert answer == empty_response_text(AgentKind.QUERY) == "No response from QUERY agent"

    def test_stream_error_raises_upstream_error(self) -> None:
        client = FakeAgentClient({"query-agent": ["SELECT ", "1"]})
        client.error = ConnectionError("stream reset")
        client.error_after = 1
        gateway = _gateway(client)
        try:
            with pytest.raises(UpstreamError) as exc_info:
                asyncio.run(gateway.invoke("q", "s", AgentKind.QUERY))
        finally:
            gateway.close()
        assert "stream reset" in exc_info.value.message
        assert exc_info.value.stage == "agent:QUERY"

    def test_deadline_raises_timeout_and_stops_listening(self) -> None:
        client = FakeAgentClient({"query-agent": ["late answer"]})
        client.block = threading.Event()
        gateway = _gateway(client, deadline=0.05)
        try:
            with pytest.raises(UpstreamTimeout):
                asyncio.run(gateway.invoke("q", "s", AgentKind.QUERY))
        finally:
            client.block.set()
            gateway.close()

    def test_unconfigured_agent_is_upstream_error(self, agent_client: FakeAgentClient) -> None:
        gateway = StreamingInvocationGateway(agent_client, {}, max_workers=1)
        try:
            with pytest.raises(UpstreamError):
                asyncio.run(gateway.invoke("q", "s", AgentKind.DEFECT))
        finally:
            gateway.close()
        assert agent_client.calls == []


def test_agent_read_timeout_is_capped_at_deadline() -> None:
    with patch("chatgate.agent.client.boto3.client") as make_client:
        BedrockAgentClient(region="us-east-1", read_timeout=900.0, deadline=120.0)
        BedrockAgentClient(region="us-east-1", read_timeout=30.0, deadline=120.0)
    capped, kept = (call.kwargs["config"] for call in make_client.call_args_list)
    assert capped.read_timeout == 120.0
    assert kept.read_timeout == 30.0
    assert capped.retries == {"total_max_attempts": 1, "mode": "standard"}
