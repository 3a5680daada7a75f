"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware: injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware: catches domain exceptions -> structured JSON errors
    3. CORSMiddleware: handles browser clients of the marketplace UI

Every error body has the shape ``{"error": {"code": ..., "message": ...}}``.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from livestock_escrow.domain.exceptions import (
    ConflictError,
    EntityNotFoundError,
    ForbiddenError,
    InvalidStateTransitionError,
    LivestockEscrowError,
    UnauthenticatedError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)


def error_response(status_code: int, code: str, message: str, **extra: object) -> JSONResponse:
    body: dict = {"code": code, "message": message}
    body.update(extra)
    return JSONResponse(status_code=status_code, content={"error": body})


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Use client-provided ID or generate one
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        # Bind to structlog context for all log entries in this request
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except EntityNotFoundError as exc:
            logger.info("request.not_found", code=exc.code, error=exc.message)
            return error_response(404, exc.code, exc.message)
        except UnauthenticatedError as exc:
            logger.info("request.unauthenticated", error=exc.message)
            return error_response(401, exc.code, exc.message)
        except ForbiddenError as exc:
            return error_response(403, exc.code, exc.message)
        except InvalidStateTransitionError as exc:
            logger.warning(
                "state_machine.invalid_transition",
                current=exc.current_state,
                attempted=exc.attempted,
            )
            return error_response(400, exc.code, exc.message)
        except ConflictError as exc:
            logger.warning("request.conflict", code=exc.code, error=exc.message)
            return error_response(400, exc.code, exc.message)
        except LivestockEscrowError as exc:
            logger.warning("domain.error", code=exc.code, error=exc.message)
            extra = {"field": exc.field} if getattr(exc, "field", None) else {}
            return error_response(400, exc.code, exc.message, **extra)
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report FastAPI request validation failures as VALIDATION_ERROR."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
    message = first.get("msg", "Invalid request")
    logger.info("request.validation_failed", field=field, error=message)
    return error_response(
        400,
        "VALIDATION_ERROR",
        f"{field}: {message}" if field else message,
        field=field or None,
    )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters: middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # CORS (runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Tighten in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handling (runs second)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)
