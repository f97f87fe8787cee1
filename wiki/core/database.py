import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from wiki.core.config import settings
from wiki.core.errors import StorageError

logger = logging.getLogger(__name__)


def build_engine(url: str = settings.DATABASE_URL) -> AsyncEngine:
    # No overflow: once DB_POOL_SIZE connections are out, callers wait for one
    return create_async_engine(
        url,
        echo=settings.SQL_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=0,
        pool_timeout=settings.DB_POOL_TIMEOUT,
    )


engine = build_engine()

# Sessions for the credential store (users table), no refresh after commit
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


# All the models are "stored" in the Base class will be processed by the Engine
class Base(DeclarativeBase):
    pass


class ConnectionScope:
    """Lends one pooled connection to one unit of work.

    The connection goes back to the pool when the ``lease()`` block exits,
    whichever way it exits: normal return, a storage error, an error raised
    by the unit of work itself, or cancellation of the task that holds it.
    Waiting for a free connection suspends the caller up to the pool timeout.
    """

    def __init__(self, db_engine: AsyncEngine):
        self.engine = db_engine
        self._live = 0

    @property
    def live_leases(self) -> int:
        return self._live

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[AsyncConnection]:
        try:
            conn = await self.engine.connect()
        except SQLAlchemyError as error:
            logger.error(f"Could not acquire a pooled connection: {error}")
            raise StorageError("Could not acquire a database connection", error)

        self._live += 1
        try:
            yield conn
        finally:
            self._live -= 1
            await conn.close()
