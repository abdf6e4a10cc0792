"""FastAPI application entry point for the legal marketplace engine.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, create tables (dev mode).
    2. Running: Serve the REST API under /api/v1/*.
    3. Shutdown: Close database and Redis connections gracefully.

Run with:
    uvicorn legal_marketplace.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from legal_marketplace.api.middleware import setup_middleware
from legal_marketplace.api.routes import bids, cases, consultations, earnings, escrow, events, health
from legal_marketplace.config import get_settings
from legal_marketplace.infrastructure.database.engine import close_db, init_db
from legal_marketplace.infrastructure.redis_client import close_redis, init_redis
from legal_marketplace.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        currency=settings.currency,
    )

    # 2. Initialize database
    await init_db()

    # 3. Initialize Redis; idempotency keys are unavailable without it
    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Legal Marketplace",
        description=(
            "Transaction lifecycle engine for a legal services marketplace: "
            "cases, bids, escrow, lawyer earnings and consultations."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    setup_middleware(app)

    app.include_router(health.router)
    app.include_router(cases.router)
    app.include_router(bids.router)
    app.include_router(escrow.router)
    app.include_router(earnings.router)
    app.include_router(consultations.router)
    app.include_router(events.router)

    return app


# The app instance used by Uvicorn
app = create_app()
