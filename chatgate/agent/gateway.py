"""
Streaming invocation gateway: one call to an agent, its event stream folded
into a single answer under a deadline.

The stream is consumed on a dedicated worker thread and accumulated by
``StreamAccumulator``, an explicit state machine
(STREAMING -> COMPLETED | FAILED | TIMED_OUT). The caller awaits the worker
with ``asyncio.wait_for``; on deadline the accumulator is moved to TIMED_OUT,
which makes the worker stop listening. The remote call itself is not aborted.
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Iterator, Protocol

from chatgate.agent.client import AgentTarget
from chatgate.core.config import AGENT_DEADLINE_SECONDS, AGENT_MAX_CONCURRENCY
from chatgate.core.errors import AppError, UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)


class AgentKind(str, Enum):
    QUERY = "QUERY"
    DEFECT = "DEFECT"


class AgentStreamClient(Protocol):
    def stream(
        self,
        target: AgentTarget,
        prompt: str,
        session_id: str,
        session_attributes: dict[str, str],
    ) -> Iterator[str]: ...


class StreamState(str, Enum):
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class StreamAccumulator:
    """Single buffer for one invocation. Every transition leaves STREAMING exactly once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._parts: list[str] = []
        self.state = StreamState.STREAMING
        self.error: BaseException | None = None

    def feed(self, chunk: str) -> bool:
        """Append a chunk; returns False once the stream is no longer being listened to."""
        with self._lock:
            if self.state is not StreamState.STREAMING:
                return False
            self._parts.append(chunk)
            return True

    def _finish(self, state: StreamState, error: BaseException | None = None) -> bool:
        with self._lock:
            if self.state is not StreamState.STREAMING:
                return False
            self.state = state
            self.error = error
            if state is not StreamState.COMPLETED:
                # No partial-success contract.
                self._parts.clear()
            return True

    def complete(self) -> bool:
        return self._finish(StreamState.COMPLETED)

    def fail(self, error: BaseException) -> bool:
        return self._finish(StreamState.FAILED, error)

    def time_out(self) -> bool:
        return self._finish(StreamState.TIMED_OUT)

    @property
    def text(self) -> str:
        with self._lock:
            return "".join(self._parts).strip()


def empty_response_text(kind: AgentKind) -> str:
    """Sentinel returned instead of an error when an agent completes with nothing."""
    return f"No response from {kind.value} agent"


class StreamingInvocationGateway:
    """Invoke the agent for an ``AgentKind`` and return its complete answer."""

    def __init__(
        self,
        client: AgentStreamClient,
        targets: dict[AgentKind, AgentTarget],
        deadline: float = AGENT_DEADLINE_SECONDS,
        max_workers: int = AGENT_MAX_CONCURRENCY,
    ) -> None:
        self._client = client
        self._targets = dict(targets)
        self.deadline = deadline
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="agent-stream")

    async def invoke(
        self,
        prompt: str,
        session_id: str,
        kind: AgentKind,
        deadline: float | None = None,
    ) -> str:
        """
        Stream one answer from the agent.

        Raises UpstreamTimeout when the deadline passes and UpstreamError on a
        transport/stream failure (buffered content is discarded). An empty
        answer is not an error: the ``empty_response_text`` sentinel is returned.
        """
        target = self._targets.get(kind)
        if target is None or not target.agent_id or not target.alias_id:
            raise UpstreamError(f"{kind.value} agent is not configured", stage=f"agent:{kind.value}")
        timeout = self.deadline if deadline is None else deadline
        logger.info(
            "[gateway:invoke] IN  kind=%s agent_id=%s session_id=%s prompt_len=%d deadline=%.1fs",
            kind.value,
            target.agent_id,
            session_id[:16],
            len(prompt),
            timeout,
        )
        accumulator = StreamAccumulator()
        loop = asyncio.get_running_loop()
        worker = loop.run_in_executor(
            self._executor, self._drain, accumulator, target, prompt, session_id
        )
        try:
            await asyncio.wait_for(worker, timeout=timeout)
        except asyncio.TimeoutError as e:
            accumulator.time_out()
            logger.warning(
                "[gateway:invoke] TIMEOUT kind=%s session_id=%s after %.1fs",
                kind.value,
                session_id[:16],
                timeout,
            )
            raise UpstreamTimeout(
                f"The {kind.value.lower()} agent did not answer within {timeout:.0f} seconds.",
                stage=f"agent:{kind.value}",
            ) from e

        if accumulator.state is StreamState.FAILED:
            error = accumulator.error
            logger.warning(
                "[gateway:invoke] FAILED kind=%s session_id=%s error=%s",
                kind.value,
                session_id[:16],
                error,
            )
            if isinstance(error, AppError):
                raise error
            raise UpstreamError(
                f"{kind.value} agent invocation failed: {error}",
                stage=f"agent:{kind.value}",
            ) from error

        answer = accumulator.text
        if not answer:
            logger.warning("[gateway:invoke] kind=%s returned empty response", kind.value)
            return empty_response_text(kind)
        logger.info("[gateway:invoke] OUT kind=%s response_len=%d", kind.value, len(answer))
        return answer

    def _drain(
        self,
        accumulator: StreamAccumulator,
        target: AgentTarget,
        prompt: str,
        session_id: str,
    ) -> None:
        """Worker-thread body: consume the stream until completion, failure, or abandonment."""
        try:
            for chunk in self._client.stream(target, prompt, session_id, {"session_id": session_id}):
                if not accumulator.feed(chunk):
                    logger.info("[gateway:drain] stopped listening state=%s", accumulator.state.value)
                    return
        except Exception as e:
            accumulator.fail(e)
            return
        accumulator.complete()

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        close = getattr(self._client, "close", None)
        if callable(close):
            close()
