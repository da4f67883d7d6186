"""Pydantic models for the proxy's own (non-relayed) responses."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Static liveness payload."""

    status: str = "ok"


class ErrorResponse(BaseModel):
    """Body of every locally generated error response."""

    error: str
    message: Optional[str] = None
