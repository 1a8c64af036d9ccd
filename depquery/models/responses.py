"""
API Response Models - Pydantic models for API responses.
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str
    environment: str
    agent_url: str
    timestamp: datetime = Field(default_factory=_utcnow)


class QueryResponse(BaseModel):
    """
    Response from a one-shot query.

    Example:
        {
            "success": true,
            "response": "The function adds two numbers...",
            "session_id": "ses_abc123",
            "duration_seconds": 12.4
        }
    """
    success: bool = True
    response: str
    session_id: str = Field(
        ...,
        description="Session ID for follow-up questions"
    )
    duration_seconds: Optional[float] = None


class SummaryResponse(BaseModel):
    """Freshly generated repository summary."""
    success: bool = True
    summary_key: str
    summary: str
    duration_seconds: Optional[float] = None


class ErrorResponse(BaseModel):
    """
    Standard error response.

    Example:
        {
            "success": false,
            "error": "Query timed out after 120.0s",
            "error_code": "QUERY_TIMEOUT",
            "details": {...}
        }
    """
    success: bool = False
    error: str
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=_utcnow)
