"""Connection pool for the PostgreSQL progress store"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from urllib.parse import urlsplit

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from src.config import DATABASE_URL, DB_POOL_MAX_SIZE, DB_POOL_MIN_SIZE
from src.exceptions import PersistenceError, wrap_external_exception

logger = logging.getLogger(__name__)


def redact_dsn(connection_string: str) -> str:
    """host:port/dbname of a connection URL, without credentials"""
    parts = urlsplit(connection_string)
    if not parts.hostname:
        return "<local socket>"
    port = f":{parts.port}" if parts.port else ""
    return f"{parts.hostname}{port}{parts.path}"


class Database:
    """Async pool shared by the progress queries"""

    def __init__(
        self,
        connection_string: str = DATABASE_URL,
        min_size: int = DB_POOL_MIN_SIZE,
        max_size: int = DB_POOL_MAX_SIZE
    ):
        self.connection_string = connection_string
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[AsyncConnectionPool] = None

    async def init_pool(self) -> None:
        """Open the pool; a second call is a no-op"""
        if self._pool is not None:
            return

        target = redact_dsn(self.connection_string)
        logger.info(f"Opening progress store pool to {target} (size {self.min_size}-{self.max_size})")
        pool = AsyncConnectionPool(
            self.connection_string,
            min_size=self.min_size,
            max_size=self.max_size,
            open=False
        )
        try:
            await pool.open(wait=True)
        except Exception as e:
            raise wrap_external_exception(e, operation="init_pool", context={"target": target})
        self._pool = pool

    async def close_pool(self) -> None:
        if self._pool:
            logger.info("Closing progress store pool")
            await self._pool.close()
            self._pool = None

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Borrow a connection with dict rows

        Raises:
            PersistenceError: If the pool has not been opened
        """
        if not self._pool:
            raise PersistenceError(
                message="Progress store pool not initialized",
                operation="connection",
            )

        async with self._pool.connection() as conn:
            conn.row_factory = dict_row
            yield conn


# Global database instance
db = Database()
