"""
PostgreSQL database connection management.

Uses asyncpg for async database operations. The ``Database`` handle owns a
connection pool with an explicit connect/close lifecycle and is passed into
the repositories that need it. Driver exceptions are translated into the
``kchoo.storage.errors`` taxonomy here, so callers never import asyncpg.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from types import TracebackType
from typing import Any

import asyncpg

from kchoo.config.settings import get_settings
from kchoo.observability.metrics import get_metrics
from kchoo.storage.errors import (
    ConstraintViolation,
    StoreConflict,
    StoreError,
    StoreUnavailable,
)

logger = logging.getLogger(__name__)

_UNAVAILABLE_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.InterfaceError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.TooManyConnectionsError,
    asyncio.TimeoutError,
    OSError,
)


def translate_error(exc: BaseException) -> StoreError | None:
    """Map an asyncpg (or socket) exception onto the store error taxonomy.

    Returns None for errors that are not part of the taxonomy (e.g. SQL
    syntax errors), which should propagate untouched.
    """
    if isinstance(exc, asyncpg.exceptions.IntegrityConstraintViolationError):
        return ConstraintViolation(str(exc))
    if isinstance(exc, asyncpg.exceptions.TransactionRollbackError):
        return StoreConflict(str(exc))
    if isinstance(exc, _UNAVAILABLE_ERRORS):
        return StoreUnavailable(str(exc) or type(exc).__name__)
    return None


@contextmanager
def _translated() -> Iterator[None]:
    try:
        yield
    except StoreError:
        raise
    except Exception as e:
        translated = translate_error(e)
        if translated is None:
            raise
        get_metrics().record_store_error(type(translated).__name__)
        raise translated from e


class Database:
    """
    Async PostgreSQL database connection manager.

    Uses asyncpg connection pool for efficient connection reuse.
    Every query helper runs a single statement on one pooled connection;
    nothing here keeps a transaction open across round trips.

    Usage:
        db = Database()
        await db.connect()

        repo = SourcesRepository(db)
        claims = await repo.claim_sources_to_populate("twitter", 10)

        await db.close()
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
        command_timeout: float | None = None,
    ):
        """
        Initialize database connection manager.

        Args:
            database_url: PostgreSQL connection URL
            min_size: Minimum pool size
            max_size: Maximum pool size
            command_timeout: Per-statement timeout in seconds
        """
        settings = get_settings()

        self._database_url = database_url or str(settings.database_url)
        self._min_size = (
            min_size if min_size is not None else settings.db_pool_min_size
        )
        self._max_size = (
            max_size if max_size is not None else settings.db_pool_max_size
        )
        self._command_timeout = (
            command_timeout
            if command_timeout is not None
            else settings.db_command_timeout
        )

        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """
        Establish database connection pool.

        Raises:
            StoreUnavailable: If the server cannot be reached.
        """
        if self._pool is not None:
            return

        try:
            with _translated():
                self._pool = await asyncpg.create_pool(
                    self._database_url,
                    min_size=self._min_size,
                    max_size=self._max_size,
                    command_timeout=self._command_timeout,
                )
        except StoreError as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

        logger.info(
            f"Database connected (pool: {self._min_size}-{self._max_size})"
        )

    async def close(self) -> None:
        """Close database connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database connection closed")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get connection pool, raising if not connected."""
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Acquire a connection from the pool.

        Usage:
            async with db.acquire() as conn:
                await conn.execute("...")
        """
        with _translated():
            async with self.pool.acquire() as conn:
                yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """
        Execute a query without returning results.

        Args:
            query: SQL query
            *args: Query parameters

        Returns:
            Status string from PostgreSQL (e.g. ``"UPDATE 3"``)
        """
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        """
        Execute a query and fetch all results.

        Args:
            query: SQL query
            *args: Query parameters

        Returns:
            List of records
        """
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        """
        Execute a query and fetch one result.

        Args:
            query: SQL query
            *args: Query parameters

        Returns:
            Single record or None
        """
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        """
        Execute a query and fetch a single value.

        Args:
            query: SQL query
            *args: Query parameters

        Returns:
            Single value
        """
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def health_check(self) -> bool:
        """
        Check if database is healthy.

        Returns:
            True if database is accessible
        """
        try:
            result = await self.fetchval("SELECT 1")
            return result == 1
        except Exception:
            return False


def affected_rows(status: str) -> int:
    """Parse the row count out of a PostgreSQL command status string.

    ``"UPDATE 3"`` -> 3, ``"INSERT 0 1"`` -> 1.
    """
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0
