"""Async database engine and session management.

Provides:
    - build_engine: Create an async engine for a URL (pool arguments only for
      server databases; SQLite uses SQLAlchemy's default pool).
    - get_async_session: FastAPI dependency that yields one session, and so one
      transaction, per request.
    - get_session_factory: Session factory used by the auto-release scheduler.
    - init_db / close_db: Lifecycle hooks for FastAPI's lifespan.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from livestock_escrow.config import Settings, get_settings
from livestock_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = get_logger(__name__)

# Module-level singletons (initialized lazily)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(settings: Settings) -> AsyncEngine:
    """Create an async engine configured from settings."""
    kwargs: dict = {"echo": settings.db_echo_sql}
    if not settings.is_sqlite:
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
        )
    engine = create_async_engine(settings.database_url, **kwargs)
    logger.info(
        "database.engine_created",
        dialect=engine.dialect.name,
        pool_size=kwargs.get("pool_size"),
    )
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory (lazy singleton)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(_get_engine())
    return _session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session.

    The session is committed on success or rolled back on error, so a rejected
    operation leaves no partial writes behind.
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables(engine: AsyncEngine) -> None:
    from livestock_escrow.infrastructure.database.orm_models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Initialize the engine and create tables if they don't exist.

    Called during FastAPI's lifespan startup. Tables are only created in
    development or against SQLite; other environments manage their schema
    out of band.
    """
    engine = _get_engine()
    settings = get_settings()

    if settings.is_development or settings.is_sqlite:
        await create_tables(engine)
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
