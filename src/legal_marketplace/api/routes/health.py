"""Liveness of the engine and the two stores it depends on.

The ledger lives in the database, so an unreachable database is reported as
``down``. Redis only guards idempotency keys; without it money endpoints that
take an ``Idempotency-Key`` fail but the rest of the API keeps working, so it
only degrades the status.
"""

from fastapi import APIRouter
from sqlalchemy import text

from legal_marketplace import __version__
from legal_marketplace.config import get_settings
from legal_marketplace.infrastructure.database.engine import _get_engine
from legal_marketplace.infrastructure.redis_client import get_redis
from legal_marketplace.logging_config import get_logger
from legal_marketplace.schemas.common import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


async def _probe_database() -> str:
    try:
        async with _get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("health.db_check_failed", error=str(exc))
        return f"unhealthy: {exc}"
    return "healthy"


async def _probe_redis() -> str:
    try:
        await get_redis().ping()
    except Exception as exc:
        logger.error("health.redis_check_failed", error=str(exc))
        return f"unhealthy: {exc}"
    return "healthy"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Database and Redis reachability plus the running configuration.",
)
async def health_check() -> HealthResponse:
    settings = get_settings()
    database = await _probe_database()
    redis = await _probe_redis()

    if database != "healthy":
        status = "down"
    elif redis != "healthy":
        status = "degraded"
    else:
        status = "ok"

    return HealthResponse(
        status=status,
        version=__version__,
        environment=settings.app_env,
        currency=settings.currency,
        database=database,
        redis=redis,
    )
