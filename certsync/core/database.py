"""Database engine, sessions and connection roles"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from certsync.core.config import Settings, settings
from certsync.core.exceptions import CredentialsUnavailableError

logger = logging.getLogger(__name__)

Base = declarative_base()

engine = create_async_engine(
    settings.DATABASE_URL,
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=settings.DATABASE_MAX_OVERFLOW,
    echo=settings.DEBUG,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class CredentialContext:
    """
    Credentials of one acquired database role.

    The plain-text credentials can be revealed once per acquisition; a second
    call raises so they cannot leak into unrelated statements.
    """

    def __init__(self, url: URL, root: bool, server_index: int = 0):
        self.url = url
        self.root = root
        self.server_index = server_index
        self._revealed = False

    def reveal(self) -> dict:
        if self._revealed:
            raise RuntimeError("Credentials of this database role were already revealed")
        self._revealed = True
        return {
            "username": self.url.username,
            "password": self.url.password,
            "host": self.url.host,
            "port": self.url.port,
            "database": self.url.database,
        }


class DatabaseRoleManager:
    """
    Stack of acquired database roles.

    ``need_root`` must be used as an async context manager so the root role is
    released on every exit path; outside of it ``current`` is the
    unprivileged role.
    """

    def __init__(self, config: Settings = settings):
        self.settings = config
        self._stack: List[CredentialContext] = []

    @property
    def current(self) -> CredentialContext:
        if self._stack:
            return self._stack[-1]
        return CredentialContext(make_url(self.settings.DATABASE_URL), root=False)

    @property
    def is_root(self) -> bool:
        return bool(self._stack) and self._stack[-1].root

    @asynccontextmanager
    async def need_root(self, server_index: int = 0) -> AsyncIterator[CredentialContext]:
        dsn = self.settings.root_database_url(server_index)
        if dsn is None:
            raise CredentialsUnavailableError(f"No root credentials configured for database server {server_index}")

        context = CredentialContext(make_url(dsn), root=True, server_index=server_index)
        self._stack.append(context)
        logger.debug(f"Acquired root role for database server {server_index}")
        try:
            yield context
        finally:
            self._stack.remove(context)
            logger.debug(f"Released root role for database server {server_index}")
