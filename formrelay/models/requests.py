"""Pydantic models for API request validation."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ReplyRequest(BaseModel):
    """A remote client's answer to one outstanding request.

    Attributes:
        response: Raw reply as sent by the client; an explicit null declines
            the request. The key is required.
    """
    response: Any = Field(..., description="Raw client reply (null = declined/closed)")
