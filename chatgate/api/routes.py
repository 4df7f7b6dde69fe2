"""
API route aggregator: register endpoints and delegate to handlers.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Header, Request

from chatgate.api.handlers import handle_chart, handle_chat, handle_export, handle_history
from chatgate.core.config import SESSION_HEADER
from chatgate.schemas.chat import ChatRequest, ChatResponse, HealthResponse, HistoryMessage, SessionCleared
from chatgate.services.orchestrator import ChatOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter()


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator


# --- Chat ---

@router.post(
    "/chat",
    response_model=ChatResponse,
    tags=["chat"],
    summary="Send a chat message",
    description="Classify the message and answer inline, with a chart, or with a downloadable summary. "
    "400 on empty message, 429 when throttled, 502/504 on upstream failure.",
)
async def post_chat(
    body: ChatRequest,
    x_session_id: str | None = Header(None, alias=SESSION_HEADER),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    return await handle_chat(orchestrator, body, x_session_id)


# --- Artifacts ---

@router.get("/chart/{filename}", tags=["artifacts"], summary="Fetch a generated chart image")
def get_chart(filename: str, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    return handle_chart(orchestrator, filename)


@router.get(
    "/download/summary/{bundle_id}",
    tags=["artifacts"],
    summary="Download the full result set of a summarized answer",
)
def get_summary_download(bundle_id: str, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    return handle_export(orchestrator, bundle_id)


# --- Sessions ---

@router.get(
    "/session/{session_id}/history",
    response_model=list[HistoryMessage],
    tags=["session"],
    summary="Chat history for a session",
)
def get_history(session_id: str, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    return handle_history(orchestrator, session_id)


@router.delete(
    "/session/{session_id}",
    response_model=SessionCleared,
    tags=["session"],
    summary="Clear a session and its rate-limit state",
)
def delete_session(session_id: str, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    orchestrator.delete_session(session_id)
    return SessionCleared(message="Session cleared successfully", session_id=session_id)


# --- System ---

@router.get("/health", response_model=HealthResponse, tags=["system"])
def health(orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(timespec="seconds"),
        active_sessions=len(orchestrator.sessions),
    )
