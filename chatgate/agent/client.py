"""
Bedrock Agent Runtime client: opens one invoke_agent call and yields the
completion stream's payload chunks as text, in arrival order.

Blocking (boto3); the gateway drives it from a worker thread.
"""

import logging
from dataclasses import dataclass
from typing import Iterator

import boto3
from botocore.config import Config

from chatgate.core.config import (
    AGENT_CONNECT_TIMEOUT,
    AGENT_DEADLINE_SECONDS,
    AGENT_MAX_CONCURRENCY,
    AGENT_READ_TIMEOUT,
    AWS_REGION,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentTarget:
    """Which deployed agent to call."""

    agent_id: str
    alias_id: str


class BedrockAgentClient:
    """Thin wrapper over ``bedrock-agent-runtime``'s streaming ``invoke_agent``."""

    def __init__(
        self,
        region: str = AWS_REGION,
        read_timeout: float = AGENT_READ_TIMEOUT,
        connect_timeout: float = AGENT_CONNECT_TIMEOUT,
        max_pool_connections: int = AGENT_MAX_CONCURRENCY,
        deadline: float = AGENT_DEADLINE_SECONDS,
    ) -> None:
        # A worker abandoned at the deadline must not stay parked on a socket read.
        config = Config(
            read_timeout=min(read_timeout, deadline),
            connect_timeout=connect_timeout,
            max_pool_connections=max_pool_connections,
            retries={"total_max_attempts": 1, "mode": "standard"},
        )
        self._client = boto3.client("bedrock-agent-runtime", region_name=region, config=config)

    def stream(
        self,
        target: AgentTarget,
        prompt: str,
        session_id: str,
        session_attributes: dict[str, str],
    ) -> Iterator[str]:
        response = self._client.invoke_agent(
            agentId=target.agent_id,
            agentAliasId=target.alias_id,
            sessionId=session_id,
            inputText=prompt,
            sessionState={"sessionAttributes": session_attributes},
        )
        for event in response["completion"]:
            chunk = event.get("chunk")
            if chunk and chunk.get("bytes"):
                yield chunk["bytes"].decode("utf-8")

    def close(self) -> None:
        self._client.close()
