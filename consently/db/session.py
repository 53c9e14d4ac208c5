"""Database engines.

The async engine serves request handlers; Celery workers have no event
loop and use the sync engine through ``sync_session()``.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session

from consently.config import settings

engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)

async_session_factory = async_sessionmaker(engine, expire_on_commit=False)

SYNC_DATABASE_URL = settings.DATABASE_URL.replace("postgresql+asyncpg://", "postgresql+psycopg2://")

_sync_engine = None


def sync_session() -> Session:
    """Open a sync session for worker processes (engine created lazily)."""
    global _sync_engine
    if _sync_engine is None:
        _sync_engine = create_engine(SYNC_DATABASE_URL, pool_pre_ping=True, pool_size=5)
    return Session(_sync_engine)
