"""
API handlers: call the orchestrator/services, map results and errors to HTTP.

Responsibility: Bridge HTTP types and services. Marshalling and exception-to-HTTP mapping.
Lives in the API layer so services stay free of FastAPI/HTTP types.
"""

import logging
from datetime import datetime

from fastapi import HTTPException
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse

from chatgate.core.errors import AppError
from chatgate.schemas.chat import ChatRequest, ChatResponse, HistoryMessage
from chatgate.services.chart_service import resolve_chart_path
from chatgate.services.orchestrator import ChatOrchestrator

logger = logging.getLogger(__name__)


def _to_http(e: AppError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


async def handle_chat(
    orchestrator: ChatOrchestrator,
    body: ChatRequest,
    header_session_id: str | None,
) -> JSONResponse:
    """Run one chat turn; error outcomes keep the ChatResponse body with a non-200 status."""
    session_id = (header_session_id or "").strip() or body.session_id
    outcome = await orchestrator.handle_message(body.message, session_id)
    payload = ChatResponse(
        response=outcome.response,
        type=outcome.type,
        session_id=outcome.session_id,
        chart_url=outcome.chart_url,
        download_url=outcome.download_url,
        timestamp=outcome.timestamp,
    )
    return JSONResponse(
        status_code=outcome.status_code,
        content=payload.model_dump(by_alias=True),
    )


def handle_chart(orchestrator: ChatOrchestrator, filename: str) -> FileResponse:
    try:
        path = resolve_chart_path(filename, orchestrator.charts.chart_dir)
    except AppError as e:
        raise _to_http(e) from e
    logger.info("[api:chart] serving %s", path.name)
    return FileResponse(
        path,
        media_type="image/png",
        headers={
            "Content-Disposition": f'inline; filename="{path.name}"',
            "Cache-Control": "no-cache",
        },
    )


def handle_export(orchestrator: ChatOrchestrator, bundle_id: str) -> PlainTextResponse:
    try:
        document = orchestrator.exporter.export(bundle_id)
    except AppError as e:
        logger.info("[api:export] %s bundle_id=%s", e.message, bundle_id)
        raise _to_http(e) from e
    filename = f"results_{datetime.now():%Y%m%d_%H%M%S}.txt"
    return PlainTextResponse(
        document,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-cache",
        },
    )


def handle_history(orchestrator: ChatOrchestrator, session_id: str) -> list[HistoryMessage]:
    try:
        messages = orchestrator.sessions.history(session_id)
    except AppError as e:
        raise _to_http(e) from e
    return [
        HistoryMessage(sender=m.sender, message=m.text, timestamp=int(m.timestamp * 1000))
        for m in messages
    ]
