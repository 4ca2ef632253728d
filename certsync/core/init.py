"""System initialization"""
import logging
from sqlalchemy.ext.asyncio import AsyncEngine

from certsync.core.database import Base, engine as default_engine
import certsync.models  # noqa: F401  register all models

logger = logging.getLogger(__name__)


async def create_tables(engine: AsyncEngine = default_engine):
    """Create all database tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")
