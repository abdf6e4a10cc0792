"""Async database engine and session management.

Provides:
    - build_engine: Engine factory honouring the configured backend.
    - get_async_session: FastAPI dependency that yields a session per request.
    - init_db / close_db: Lifecycle hooks for FastAPI's lifespan.

Every service call made while handling one request shares that request's
session, so a multi-entity operation (accept a bid, release an escrow)
commits or rolls back as a single unit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from legal_marketplace.config import get_settings
from legal_marketplace.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine.

    An in-memory SQLite database only exists on one connection, so it gets a
    single shared connection. A file SQLite database gets a connection per
    session and a busy timeout, so concurrent writers wait on the lock instead
    of failing at once. PostgreSQL gets the pooled configuration from settings.
    """
    settings = get_settings()
    url = make_url(database_url)
    options: dict[str, Any] = {"echo": echo}
    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        options.update(
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    elif url.get_backend_name() == "sqlite":
        options.update(
            connect_args={"check_same_thread": False, "timeout": settings.sqlite_busy_timeout},
        )
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
        )
    return create_async_engine(database_url, **options)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _get_engine() -> AsyncEngine:
    """Get or create the async engine (lazy singleton)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url, echo=settings.db_echo_sql)
        logger.info(
            "database.engine_created",
            backend=_engine.dialect.name,
            pool_size=None if settings.is_sqlite else settings.db_pool_size,
        )
    return _engine


def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory (lazy singleton)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(_get_engine())
    return _session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session.

    The session is committed on success or rolled back on error.
    """
    factory = _get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_schema(engine: AsyncEngine) -> None:
    from legal_marketplace.infrastructure.database.orm_models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Initialize the engine and create tables when running in development.

    Called during FastAPI's lifespan startup. Other environments are expected
    to have the schema provisioned ahead of time.
    """
    engine = _get_engine()
    settings = get_settings()

    if settings.is_development:
        await create_schema(engine)
        logger.info("database.tables_created")
    else:
        logger.info("database.skipping_create_all", reason="not in development mode")


async def close_db() -> None:
    """Dispose of the database engine. Called during FastAPI's lifespan shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database.engine_disposed")
        _engine = None
        _session_factory = None
