"""Exception handlers: every failure leaves the service in the APIResponse envelope."""

import logging

import psycopg2
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes

logger = logging.getLogger(__name__)


def _error_json(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Field locations only: submitted values may include passwords.
        fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
        return _error_json(422, ErrorCodes.VALIDATION_ERROR, f"Invalid request fields: {', '.join(fields)}")

    @app.exception_handler(psycopg2.OperationalError)
    async def store_unavailable_handler(request: Request, exc: psycopg2.OperationalError):
        logger.error(f"Identity store unavailable: {exc}")
        return _error_json(503, ErrorCodes.STORE_UNAVAILABLE, "Service temporarily unavailable")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _error_json(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
