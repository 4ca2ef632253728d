"""Shared utilities for Celery tasks"""
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from certsync.core.config import settings


def create_task_db_session(database_url: Optional[str] = None) -> Tuple[AsyncEngine, async_sessionmaker]:
    """
    Engine and session factory owned by one task invocation.

    Tasks run their coroutine with asyncio.run() on a fresh event loop and
    asyncpg connections are bound to the loop that created them, so the
    module-level engine cannot be reused. A certificate run is sequential and
    needs a single connection; the caller disposes the engine afterwards.
    """
    task_engine = create_async_engine(
        database_url or settings.DATABASE_URL,
        pool_size=1,
        max_overflow=0,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )
    session_factory = async_sessionmaker(
        task_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return task_engine, session_factory
