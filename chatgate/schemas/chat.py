"""Schemas for the chat endpoints. JSON field names are camelCase on the wire."""

from typing import Any

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Request body for POST /api/chat. The X-Session-ID header wins over ``sessionId``."""

    model_config = {"populate_by_name": True}

    message: str | None = Field(None, description="User message. Empty or missing messages are rejected with 400.")
    session_id: str | None = Field(None, alias="sessionId", description="Session ID; history is kept server-side.")
    metadata: dict[str, Any] | None = Field(None, description="Free-form client metadata (ignored).")


class ChatResponse(BaseModel):
    """Response for POST /api/chat, for success and error outcomes alike."""

    response: str = Field(..., description="Text shown to the user.")
    type: str = Field(..., description="text | chart | summary | defect_recommendation | error")
    session_id: str = Field(..., alias="sessionId")
    chart_url: str | None = Field(None, alias="chartUrl", description="Set for chart responses.")
    download_url: str | None = Field(None, alias="downloadUrl", description="Set for summary responses.")
    timestamp: int = Field(..., description="Epoch milliseconds.")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "response": "**Results for your query:** ...",
                    "type": "text",
                    "sessionId": "session_1718000000000_1a2b3c4d",
                    "timestamp": 1718000000123,
                }
            ]
        },
    }


class HistoryMessage(BaseModel):
    sender: str
    message: str
    timestamp: int


class SessionCleared(BaseModel):
    model_config = {"populate_by_name": True}

    message: str
    session_id: str = Field(..., alias="sessionId")


class HealthResponse(BaseModel):
    model_config = {"populate_by_name": True}

    status: str
    timestamp: str
    active_sessions: int = Field(..., alias="activeSessions")
