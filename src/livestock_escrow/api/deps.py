"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the caller identity, the clock and configuration.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from livestock_escrow.config import Settings, get_settings
from livestock_escrow.domain.authorization import Caller
from livestock_escrow.domain.enums import Role
from livestock_escrow.domain.exceptions import UnauthenticatedError
from livestock_escrow.infrastructure.database.engine import get_async_session
from livestock_escrow.infrastructure.database.orm_models import utcnow
from livestock_escrow.logging_config import bind_caller
from livestock_escrow.services.base import Clock


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_caller(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_company_id: str | None = Header(default=None),
) -> Caller:
    """Build the caller identity forwarded by the authentication collaborator."""
    if not x_user_id or not x_user_role:
        raise UnauthenticatedError("X-User-Id and X-User-Role headers are required.")
    try:
        role = Role.parse(x_user_role)
    except ValueError as exc:
        raise UnauthenticatedError(f"Unknown role: {x_user_role}") from exc
    bind_caller(x_user_id, role.value, x_company_id or None)
    return Caller(user_id=x_user_id, role=role, company_id=x_company_id or None)


def get_clock() -> Clock:
    """Provide the clock services use for timestamps and timers."""
    return utcnow


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()
