"""
Chat orchestrator: the per-request cycle and the process-wide context.

One ``ChatOrchestrator`` owns the three shared tables (sessions, rate windows,
result bundles), the collaborators, and the background sweep task. It is
created by the app lifespan and handed to request handlers; ``start`` spawns
the sweep, ``stop`` cancels it and releases clients.

No exception leaves ``handle_message``: every failure becomes an error-kind
outcome carrying the original AppError for status mapping.
"""

import asyncio
import contextlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

from chatgate.agent.client import AgentTarget, BedrockAgentClient
from chatgate.agent.gateway import AgentKind, StreamingInvocationGateway
from chatgate.agent.graph import build_dispatch_graph
from chatgate.core.config import (
    BUNDLE_TTL_SECONDS,
    DEFECT_AGENT_ALIAS_ID,
    DEFECT_AGENT_ID,
    QUERY_AGENT_ALIAS_ID,
    QUERY_AGENT_ID,
    SESSION_IDLE_TIMEOUT,
    SWEEP_INTERVAL_SECONDS,
)
from chatgate.core.errors import AppError, InternalError, ThrottleError, ValidationError
from chatgate.core.rate_limiter import AdmissionController
from chatgate.core.session_store import SENDER_BOT, SENDER_USER, SessionStore
from chatgate.services.chart_service import ChartRenderer
from chatgate.services.query_service import QueryExecutor, build_query_executor
from chatgate.services.result_export import ResultExporter

logger = logging.getLogger(__name__)

THROTTLED_TEXT = "Too many requests. Please wait a moment before sending another message."
EMPTY_MESSAGE_TEXT = "Message cannot be empty."
INTERNAL_ERROR_TEXT = "I encountered an error processing your request. Please try again."


def new_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


@dataclass
class ChatOutcome:
    """Result of one chat request; ``error`` is set for every error-kind response."""

    response: str
    type: str
    session_id: str
    chart_url: str | None = None
    download_url: str | None = None
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    error: AppError | None = None

    @property
    def status_code(self) -> int:
        return self.error.status_code if self.error is not None else 200


@dataclass(frozen=True)
class SweepReport:
    sessions: int
    rate_windows: int
    bundles: int


class ChatOrchestrator:
    """Composes admission, sessions, dispatch and presentation per inbound message."""

    def __init__(
        self,
        gateway: StreamingInvocationGateway,
        executor: QueryExecutor,
        charts: ChartRenderer | None = None,
        sessions: SessionStore | None = None,
        limiter: AdmissionController | None = None,
        exporter: ResultExporter | None = None,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        session_idle_timeout: float = SESSION_IDLE_TIMEOUT,
        bundle_ttl: float = BUNDLE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.gateway = gateway
        self.executor = executor
        self.charts = charts or ChartRenderer()
        self.sessions = sessions or SessionStore(clock=clock)
        self.limiter = limiter or AdmissionController(clock=clock)
        self.exporter = exporter or ResultExporter(clock=clock)
        self.sweep_interval = sweep_interval
        self.session_idle_timeout = session_idle_timeout
        self.bundle_ttl = bundle_ttl
        self._clock = clock
        self._graph = build_dispatch_graph(gateway, executor, self.charts, self.exporter)
        self._sweep_task: asyncio.Task | None = None

    # --- lifecycle ---

    async def start(self) -> None:
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info("[orchestrator:start] sweep every %.0fs", self.sweep_interval)

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None
        aclose = getattr(self.executor, "aclose", None)
        if callable(aclose):
            await aclose()
        self.gateway.close()
        logger.info("[orchestrator:stop] shutdown completed")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await asyncio.to_thread(self.sweep)
            except Exception:
                logger.exception("[orchestrator:sweep] sweep failed")

    def sweep(self, now: float | None = None) -> SweepReport:
        """Evict idle sessions, empty rate windows and expired bundles."""
        now = self._clock() if now is None else now
        report = SweepReport(
            sessions=self.sessions.sweep(self.session_idle_timeout, now=now),
            rate_windows=self.limiter.sweep(now=now),
            bundles=self.exporter.sweep(self.bundle_ttl, now=now),
        )
        logger.info(
            "[orchestrator:sweep] removed sessions=%d rate_windows=%d bundles=%d; active sessions=%d bundles=%d",
            report.sessions,
            report.rate_windows,
            report.bundles,
            len(self.sessions),
            len(self.exporter),
        )
        return report

    # --- request cycle ---

    async def handle_message(self, message: str | None, session_id: str | None = None) -> ChatOutcome:
        session_id = (session_id or "").strip() or new_session_id()
        logger.info("[orchestrator:handle_message] IN  session_id=%s message_len=%d", session_id[:16], len(message or ""))

        if not self.limiter.allow(session_id):
            return self._error(session_id, ThrottleError(THROTTLED_TEXT, stage="admission"))
        self.sessions.get_or_create(session_id)
        text = (message or "").strip()
        if not text:
            return self._error(session_id, ValidationError(EMPTY_MESSAGE_TEXT, stage="validation"))

        user_message = self.sessions.append(session_id, SENDER_USER, text)
        try:
            final = await self._graph.ainvoke({"session_id": session_id, "message": text})
            reply = final.get("reply") or {}
            if not reply.get("response"):
                raise InternalError(INTERNAL_ERROR_TEXT, stage="dispatch")
            outcome = ChatOutcome(
                response=reply["response"],
                type=reply.get("type", "text"),
                session_id=session_id,
                chart_url=reply.get("chart_url"),
                download_url=reply.get("download_url"),
            )
        except AppError as e:
            outcome = self._error(session_id, e)
        except Exception as e:
            logger.exception("[orchestrator:handle_message] unexpected failure session_id=%s", session_id[:16])
            outcome = self._error(session_id, InternalError(INTERNAL_ERROR_TEXT, stage="dispatch"), cause=e)

        self.sessions.append(session_id, SENDER_BOT, outcome.response, reply_to=user_message)
        logger.info(
            "[orchestrator:handle_message] OUT session_id=%s type=%s status=%d",
            session_id[:16],
            outcome.type,
            outcome.status_code,
        )
        return outcome

    def _error(self, session_id: str, error: AppError, cause: Exception | None = None) -> ChatOutcome:
        if cause is None:
            logger.warning(
                "[orchestrator:error] session_id=%s stage=%s kind=%s status=%d message=%s",
                session_id[:16],
                error.stage,
                error.kind,
                error.status_code,
                error.message,
            )
        return ChatOutcome(response=error.message, type="error", session_id=session_id, error=error)

    def delete_session(self, session_id: str) -> None:
        """Drop a session and its rate-limit state. Idempotent."""
        self.sessions.remove(session_id)
        self.limiter.remove(session_id)


def build_orchestrator() -> ChatOrchestrator:
    """Wire the production collaborators from config."""
    gateway = StreamingInvocationGateway(
        BedrockAgentClient(),
        {
            AgentKind.QUERY: AgentTarget(QUERY_AGENT_ID, QUERY_AGENT_ALIAS_ID),
            AgentKind.DEFECT: AgentTarget(DEFECT_AGENT_ID, DEFECT_AGENT_ALIAS_ID),
        },
    )
    return ChatOrchestrator(gateway=gateway, executor=build_query_executor())
