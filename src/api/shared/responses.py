"""
Standard API Response Models

Consistent error response shape for every service.
"""

from datetime import datetime
from typing import Optional, List
from uuid import uuid4

from pydantic import BaseModel, Field

from ...core.timeutil import utcnow


class ErrorDetail(BaseModel):
    """Detailed error information for validation errors."""

    field: Optional[str] = None
    message: str
    code: Optional[str] = None


class ErrorBody(BaseModel):
    """Error body with code, message, and details."""

    code: str
    message: str
    details: Optional[List[ErrorDetail]] = None
    trace_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=utcnow)


class ErrorResponse(BaseModel):
    """
    Standard error response.

    Response shape:
    {
        "error": {
            "code": "AUCTION_NOT_FOUND",
            "message": "Human-readable error message",
            "details": [...],
            "trace_id": "abc-123",
            "timestamp": "2026-01-19T12:00:00+00:00"
        }
    }
    """

    error: ErrorBody
