"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the caller's identity, idempotency claims and configuration.
"""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from legal_marketplace.domain.enums import Role
from legal_marketplace.domain.exceptions import AuthorizationError, DuplicateOperationError
from legal_marketplace.domain.identity import Caller
from legal_marketplace.infrastructure.database.engine import get_async_session
from legal_marketplace.infrastructure.redis_client import (
    claim_idempotency,
    release_idempotency,
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_caller(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Caller:
    """Identity asserted by the upstream auth layer via X-User-Id / X-User-Role."""
    if not x_user_id:
        raise AuthorizationError("Missing X-User-Id header")
    try:
        role = Role((x_user_role or Role.CLIENT).upper())
    except ValueError as exc:
        raise AuthorizationError(f"Unknown role '{x_user_role}'") from exc
    return Caller(user_id=x_user_id, role=role)


def get_idempotency_key(
    idempotency_key: str | None = Header(default=None, max_length=128),
) -> str | None:
    return idempotency_key


@asynccontextmanager
async def idempotent(scope: str, key: str | None) -> AsyncIterator[None]:
    """Guard a money-moving call with the caller's Idempotency-Key.

    A reused key raises DuplicateOperationError; a failed call releases its
    key so the client can retry with the same one.
    """
    if key is None:
        yield
        return
    if not await claim_idempotency(scope, key):
        raise DuplicateOperationError(key)
    try:
        yield
    except Exception:
        await release_idempotency(scope, key)
        raise
