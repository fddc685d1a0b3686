"""Error Handlers — map TradePilot failures onto the HTTP error envelope.

Invariants:
    - TradePilotError → its own http_status and to_response() envelope; the
      error's details() (failed rules, kill-switch condition, handler code) ride
      along under error.details so guard and halt outcomes stay auditable
    - Log records carry run_id, phase and tool_name from the error's ErrorContext;
      the log level follows the error's severity
    - retry_after_ms on the context becomes a Retry-After header (whole seconds)
    - RequestValidationError → 400 VALIDATION_ERROR with field-level details
    - Exception (catch-all) → 500 that never leaks internal details

Design Decisions:
    - Registered from main.py so the entry point stays wiring only
"""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from tradepilot.core.errors import ErrorSeverity, TradePilotError

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TradePilotError, tradepilot_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)


async def tradepilot_error_handler(request: Request, exc: TradePilotError):
    ctx = exc.context
    logger.log(
        _LOG_LEVELS.get(exc.severity, logging.ERROR),
        f"{exc.code} on {request.url.path}: {exc.message}",
        extra={
            "error_code": exc.code,
            "path": request.url.path,
            "run_id": ctx.run_id,
            "phase": ctx.phase,
            "tool_name": ctx.tool_name,
        },
    )
    content = exc.to_response()
    details = exc.details()
    if details:
        content["error"]["details"] = details

    headers = None
    if ctx.retry_after_ms:
        headers = {"Retry-After": str(math.ceil(ctx.retry_after_ms / 1000))}
    return JSONResponse(status_code=exc.http_status, content=content, headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.warning(
        f"Rejected request to {request.url.path}: {len(errors)} invalid field(s)",
        extra={"path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "category": "validation",
                "severity": ErrorSeverity.ERROR.value,
                "details": [_field_error(e) for e in errors],
            },
        },
    )


async def generic_error_handler(request: Request, exc: Exception):
    """Catch-all. The response never carries the exception text."""
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.url.path}: {exc}",
        exc_info=True,
        extra={"path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "category": "internal",
                "severity": ErrorSeverity.CRITICAL.value,
            },
        },
    )


def _field_error(error: dict) -> dict:
    return {
        "field": ".".join(str(loc) for loc in error["loc"]),
        "message": error["msg"],
        "type": error["type"],
    }
