"""Global error hierarchy and FastAPI exception handlers.

All picker-specific errors extend PickerError. The FastAPI exception handlers
catch these errors (plus Pydantic's RequestValidationError and unhandled exceptions)
and return a consistent JSON envelope: { success, data, error, meta }.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class PickerError(Exception):
    """Base error for all picker-specific errors."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class ValidationError(PickerError):
    """Pydantic / payload validation failures — includes field-level details."""

    status_code = 422
    message = "Validation error"


class EndpointRequestError(PickerError):
    """A single relay attempt failed (timeout, non-2xx, empty or malformed body).

    Recorded into relay health and recovered by failover; the router never
    lets this escape to its caller.
    """

    status_code = 502
    message = "Relay request failed"


class AllEndpointsExhaustedError(PickerError):
    """Every viable relay failed across all retry passes."""

    status_code = 502
    message = "All CORS proxies failed"

    def __init__(self, last_error: str | None = None, attempts: int = 0) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            f"All CORS proxies failed after {attempts} attempts. Latest: {last_error}",
            last_error=last_error,
            attempts=attempts,
        )

    @property
    def should_back_off(self) -> bool:
        """True when the last failure looks like a block or rate limit (403/429)."""
        if not self.last_error:
            return False
        return "status: 403" in self.last_error or "status: 429" in self.last_error


class AllEndpointsUnhealthyError(PickerError):
    """Health filtering left no relay to try."""

    status_code = 503
    message = "All CORS proxies are currently unhealthy"


class BGGApiError(PickerError):
    """BGG answered with an error document or a payload that is not XML."""

    status_code = 502
    message = "BGG API error"


class CollectionProcessingError(PickerError):
    """BGG accepted the collection request and is still building it."""

    status_code = 202
    message = "BGG is processing your collection. Please wait 30-60 seconds and try again."


class CollectionNotFoundError(PickerError):
    """No collection data for the requested user."""

    status_code = 404
    message = "No collection found for this user"


class EmptyCollectionError(PickerError):
    """The user exists but has no games in their collection."""

    status_code = 404
    message = "User has no games in their collection"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _envelope(
    status_code: int,
    error: str,
    meta: dict | None = None,
) -> JSONResponse:
    """Build a JSON envelope error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": error,
            "meta": meta,
        },
    )


async def _picker_error_handler(_request: Request, exc: PickerError) -> JSONResponse:
    """Handle PickerError subclasses."""
    meta = dict(exc.details) if exc.details else None
    if isinstance(exc, AllEndpointsExhaustedError):
        meta = meta or {}
        meta["should_back_off"] = exc.should_back_off
    return _envelope(exc.status_code, exc.message, meta=meta)


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI / Pydantic RequestValidationError (422)."""
    field_errors = [
        {
            "field": " -> ".join(str(loc) for loc in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    return _envelope(
        status_code=422,
        error="Validation error",
        meta={"fields": field_errors},
    )


async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log traceback, return generic 500."""
    logger.error(
        "Unhandled exception: %s\n%s",
        exc,
        traceback.format_exc(),
    )
    return _envelope(status_code=500, error="Internal server error")


# ---------------------------------------------------------------------------
# Registration helper
# ---------------------------------------------------------------------------


def register_error_handlers(app: FastAPI) -> None:
    """Wire up all exception handlers on the FastAPI application."""
    app.add_exception_handler(PickerError, _picker_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)  # type: ignore[arg-type]
