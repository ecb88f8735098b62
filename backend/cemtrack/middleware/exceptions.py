"""Ledger exceptions and the FastAPI handlers that render them.

Every failure leaves the API as a flat JSON object:

    {
        "error": "Human-readable message",
        "code": "ERROR_CODE",
        "debug_action": "registerBatch",   // action being dispatched, if any
        "details": {...}                   // optional
    }
"""

import logging
import traceback
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class CemTrackException(Exception):
    """Base exception for ledger errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class LockTimeout(CemTrackException):
    """The ledger lock was not obtained in time.  Safe to retry."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(
            message=f"Ledger is busy: lock not acquired within {timeout:g}s",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="LOCK_TIMEOUT",
        )


class StoreUnavailable(CemTrackException):
    """The backing store cannot be opened or reached."""

    def __init__(self, message: str = "Ledger store unavailable"):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="STORE_UNAVAILABLE",
        )


class SchemaMissing(CemTrackException):
    """A ledger table is absent and auto-provisioning is disabled."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(
            message=f"Ledger table missing: {table}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="SCHEMA_MISSING",
        )


class UnknownAction(CemTrackException):
    def __init__(self, action: str | None):
        self.action = action
        super().__init__(
            message=f"Unknown action: {action}",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="UNKNOWN_ACTION",
        )


class InvalidRequest(CemTrackException):
    """Input rejected by a ledger service."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="INVALID_REQUEST",
        )


class BagNotFound(CemTrackException):
    def __init__(self, bag_id: str):
        self.bag_id = bag_id
        super().__init__(
            message=f"Bag not found: {bag_id}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="BAG_NOT_FOUND",
        )


class DuplicateUsage(CemTrackException):
    """A usage event targets a bag that is already USED."""

    def __init__(self, bag_id: str, site_id: str):
        self.bag_id = bag_id
        self.site_id = site_id
        super().__init__(
            message=f"Bag {bag_id} is already USED (site {site_id or 'unknown'})",
            status_code=status.HTTP_409_CONFLICT,
            error_code="DUPLICATE_USAGE",
        )


def _current_action(request: Request) -> str | None:
    return getattr(request.state, "action", None)


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    action: str | None = None,
    details: Union[dict, list, None] = None,
    headers: dict | None = None,
) -> JSONResponse:
    """Create standardized error response."""
    content = {
        "error": message,
        "code": error_code,
        "debug_action": action,
    }

    if details:
        content["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers,
    )


async def cemtrack_exception_handler(
    request: Request,
    exc: CemTrackException,
) -> JSONResponse:
    """Handle ledger exceptions."""
    logger.warning(
        f"Ledger exception: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "action": _current_action(request),
        },
    )

    headers = None
    if isinstance(exc, LockTimeout):
        headers = {"Retry-After": str(max(1, int(exc.timeout)))}

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        action=_current_action(request),
        headers=headers,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
        action=_current_action(request),
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Handle Pydantic validation errors (request bodies and action payloads)."""
    logger.warning(
        f"Validation error on {request.url.path}",
        extra={
            "path": request.url.path,
            "action": _current_action(request),
            "errors": exc.errors(),
        },
    )

    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    summary = "; ".join(f"{e['field']}: {e['message']}" for e in errors)
    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message=f"Validation error: {summary}" if summary else "Validation error",
        error_code="VALIDATION_ERROR",
        action=_current_action(request),
        details={"errors": errors},
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error(
        f"Unhandled exception on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "action": _current_action(request),
            "traceback": traceback.format_exc(),
        },
        exc_info=True,
    )

    # Don't expose internal details
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
        action=_current_action(request),
    )


def register_exception_handlers(app):
    """Register all ledger exception handlers with the FastAPI app."""
    app.add_exception_handler(CemTrackException, cemtrack_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
