"""
Error Response Models

Response bodies returned by the global exception handlers.
"""

from datetime import datetime, timezone
from typing import Dict, Optional, Any, List

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ErrorResponse(BaseModel):
    """Error body shared by every failing endpoint."""
    status: str = Field(default="error", description="Error status indicator")
    message: str = Field(..., description="Human-readable error message")
    error_code: str = Field(..., description="Machine-readable error code, e.g. EMAIL_NOT_FOUND")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_now, description="Error timestamp")


class ValidationErrorItem(BaseModel):
    """One failing field of a request body."""
    loc: List[str] = Field(..., description="Error location (field path)")
    msg: str = Field(..., description="Error message")
    type: str = Field(..., description="Error type")


class ValidationErrorResponse(ErrorResponse):
    """Error body for request validation failures."""
    validation_errors: List[ValidationErrorItem] = Field(
        ...,
        description="List of specific validation errors"
    )
