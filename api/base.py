"""Unified API response format and error codes."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Failed identity actions still carry `data` (the next step and the
    values that view needs), next to the error code.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def _meta() -> APIMeta:
    return APIMeta(timestamp=now_utc(), request_id=str(uuid4()))


def success_response(data: Any) -> APIResponse:
    """Create a success response."""
    return APIResponse(success=True, data=data, error=None, meta=_meta())


def error_response(code: str, message: str, data: Any | None = None) -> APIResponse:
    """Create an error response."""
    return APIResponse(
        success=False,
        data=data,
        error=APIError(code=code, message=message),
        meta=_meta(),
    )


class ErrorCodes:
    """
    Transport-level error codes.

    Identity flow failures use their outcome code (e.g. `invalid_credentials`)
    as the error code instead; these cover everything around the flow.
    """

    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    EMAIL_REQUIRED = "EMAIL_REQUIRED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"
