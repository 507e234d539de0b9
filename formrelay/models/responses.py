"""Pydantic models for API response serialization."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class OutboundRequest(BaseModel):
    """A request waiting to be shown by the remote client."""
    request_id: int = Field(..., description="Id the reply must be posted to")
    form: dict[str, Any] = Field(..., description="Wire payload of the dialog, menu or form")


class PollResponse(BaseModel):
    """Requests drained from a session's outbox."""
    success: bool = True
    session_id: str
    requests: list[OutboundRequest] = Field(default_factory=list)


class ReplyResponse(BaseModel):
    """Result of delivering a reply."""
    success: bool = True
    outcome: str = Field(..., description="resolved | declined | ignored")


class SessionResponse(BaseModel):
    """Result of a session lifecycle call."""
    success: bool = True
    session_id: str
    started: bool | None = None
    cancelled: int | None = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: dict[str, Any] = Field(..., description="Error details with 'message', 'code' and optionally 'kind'")
