# app/core/db.py
"""
Async database configuration and session management for Print3D.

- Lazy engine creation (no connections at import time).
- Postgres URLs are normalized to asyncpg in Settings; SQLite uses aiosqlite.
- Utilities: get_db(), get_sessionmaker(), init_db(), close_db(), health_check_db().
"""

from __future__ import annotations

import asyncio
import time as _time
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "get_engine",
    "get_sessionmaker",
    "get_db",
    "init_db",
    "close_db",
    "health_check_db",
]

_ASYNC_ENGINE: Optional[AsyncEngine] = None
_SESSION_MAKER: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(url: str) -> dict:
    opts: dict = {"echo": bool(settings.SQLALCHEMY_ECHO), "future": True}
    if url.startswith("sqlite"):
        # sqlite busy timeout, seconds
        opts["connect_args"] = {"timeout": 30}
    else:
        opts.update(pool_pre_ping=True, pool_size=10, max_overflow=20, pool_recycle=1800)
    return opts


def get_engine() -> AsyncEngine:
    global _ASYNC_ENGINE
    if _ASYNC_ENGINE is None:
        url = settings.DATABASE_URL
        _ASYNC_ENGINE = create_async_engine(url, **_engine_options(url))
        logger.info("db_engine_created", dialect=_ASYNC_ENGINE.dialect.name)
    return _ASYNC_ENGINE


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    global _SESSION_MAKER
    if _SESSION_MAKER is None:
        _SESSION_MAKER = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _SESSION_MAKER


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency.
    Opens a session on entry and closes it on exit; connecting happens here,
    not at import time.
    """
    session = get_sessionmaker()()
    try:
        yield session
    finally:
        await session.close()


async def init_db(drop_all: bool = False) -> None:
    # models must be imported so their tables are registered on the metadata
    from app.models import Base

    eng = get_engine()
    async with eng.begin() as conn:
        if drop_all:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _ASYNC_ENGINE, _SESSION_MAKER
    if _ASYNC_ENGINE is not None:
        await _ASYNC_ENGINE.dispose()
    _ASYNC_ENGINE = None
    _SESSION_MAKER = None


async def health_check_db(timeout_seconds: int = 2) -> dict:
    start = _time.perf_counter()

    async def _ping() -> None:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))

    try:
        await asyncio.wait_for(_ping(), timeout=timeout_seconds)
    except Exception as e:  # noqa: BLE001 - health check reports, never raises
        logger.warning("db_health_check_failed", error=str(e))
        return {"ok": False, "error": str(e)}
    return {"ok": True, "latency_ms": round((_time.perf_counter() - start) * 1000.0, 2)}
