"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors
    3. CORSMiddleware — handles the browser and mobile front-ends
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from legal_marketplace.domain.exceptions import (
    AuthorizationError,
    BidAlreadyAcceptedError,
    ConcurrentUpdateError,
    DuplicateOperationError,
    EntityNotFoundError,
    EscrowAlreadyExistsError,
    HoldPeriodNotElapsedError,
    InsufficientFundsError,
    InvalidInputError,
    InvalidStateTransitionError,
    MarketplaceError,
    SlotUnavailableError,
)
from legal_marketplace.logging_config import (
    bind_request_context,
    clear_request_context,
    get_logger,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = get_logger(__name__)

# Most specific first; the first matching class wins.
_STATUS_BY_ERROR: tuple[tuple[type[MarketplaceError], int], ...] = (
    (EntityNotFoundError, 404),
    (AuthorizationError, 403),
    (InvalidStateTransitionError, 409),
    (BidAlreadyAcceptedError, 409),
    (EscrowAlreadyExistsError, 409),
    (HoldPeriodNotElapsedError, 409),
    (ConcurrentUpdateError, 409),
    (SlotUnavailableError, 409),
    (DuplicateOperationError, 409),
    (InvalidInputError, 422),
    (InsufficientFundsError, 402),
)


def status_for(exc: MarketplaceError) -> int:
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 400


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        clear_request_context()
        bind_request_context(request_id=request_id)
        user_id = request.headers.get("X-User-Id")
        if user_id:
            bind_request_context(user_id=user_id)

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
        except MarketplaceError as exc:
            status_code = status_for(exc)
            log = logger.warning if status_code < 500 else logger.error
            log(
                "request.domain_error",
                code=exc.code,
                error=exc.message,
                status_code=status_code,
                path=request.url.path,
            )
            return JSONResponse(
                status_code=status_code,
                content={"error": exc.code, "message": exc.message},
            )
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters — middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Tighten in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)
