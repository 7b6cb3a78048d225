# catalog_sync/db.py
from __future__ import annotations

import os
import pathlib
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    async_sessionmaker,
    AsyncSession,
)
from sqlalchemy.orm import DeclarativeBase

from catalog_sync.config import settings

logger = logging.getLogger("uvicorn.error")

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


class Base(DeclarativeBase):
    pass


def _sqlite_file(dsn: str) -> Optional[pathlib.Path]:
    """Database file of a sqlite DSN (None for :memory: or non-sqlite)."""
    if not dsn.startswith("sqlite") or ":memory:" in dsn:
        return None
    # sqlite+aiosqlite:///relative.db or sqlite+aiosqlite:////abs/path.db
    _, _, path_part = dsn.partition(":///")
    return pathlib.Path(path_part).resolve() if path_part else None


def _resolve_dsn(dsn: Optional[str] = None) -> str:
    """Explicit dsn, then DATABASE_URL, else a SQLite file in the data dir."""
    dsn = (
        dsn
        or settings.DATABASE_URL
        or os.getenv("DATABASE_URL")
        or f"sqlite+aiosqlite:///{settings.DATA_DIR}/catalog_sync.db"
    )
    db_file = _sqlite_file(dsn)
    if db_file is not None:
        try:
            db_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("[DB] cannot create %s: %s", db_file.parent, e)
    return dsn


def configure(dsn: Optional[str] = None) -> AsyncEngine:
    """(Re)create the global engine and sessionmaker, e.g. for a test database."""
    global _engine, _sessionmaker
    dsn = _resolve_dsn(dsn)
    _engine = create_async_engine(dsn, echo=False, pool_pre_ping=True)
    _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
    logger.info("[DB] engine initialized for %s", dsn)
    return _engine


def get_engine() -> AsyncEngine:
    """Lazily create a global AsyncEngine and sessionmaker."""
    if _engine is None:
        return configure()
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        get_engine()
    return _sessionmaker  # type: ignore[return-value]


async def init_db() -> None:
    """Create tables for every registered model."""
    # registers the models on Base.metadata
    from catalog_sync.models import sync_claim  # noqa: F401

    eng = get_engine()
    try:
        async with eng.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error("[DB] initial connect failed: %s", e)
        raise


async def dispose() -> None:
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None
