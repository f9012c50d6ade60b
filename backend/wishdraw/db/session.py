import asyncio
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from wishdraw.core.config import settings


def _engine_options(dsn: str) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if make_url(dsn).get_backend_name() == "postgresql":
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=settings.db_pool_recycle,
            pool_timeout=settings.db_pool_timeout,
        )
    return options


def build_engine(dsn: str) -> AsyncEngine:
    return create_async_engine(dsn, **_engine_options(dsn))


engine = build_engine(settings.postgres_dsn)


class Base(DeclarativeBase):
    pass


# Draw transactions read results after commit, so nothing may expire on commit.
async_session_factory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    autoflush=False,
)

_schema_ready = False
_schema_lock = asyncio.Lock()


async def ensure_schema_ready() -> None:
    """Create tables once when the startup hook did not run (tests, scripts)."""
    global _schema_ready
    if _schema_ready:
        return

    async with _schema_lock:
        if _schema_ready:
            return

        from wishdraw.models import models as _models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        _schema_ready = True


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    await ensure_schema_ready()
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that owns its own transactions (draws, sweeps)."""
    await ensure_schema_ready()
    return async_session_factory
