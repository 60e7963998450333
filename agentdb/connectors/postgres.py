"""
PostgreSQL Connector

Async PostgreSQL connector using asyncpg.

Features:
- Connection pooling with asyncpg
- Ordinary and read-only transactional execution
- Affected-row counts for INSERT/UPDATE/DELETE from the command tag
- Multi-statement scripts (run without result rows)

Usage:
    connector = PostgresConnector(
        host="localhost",
        port=5432,
        database="mydb",
        user="postgres",
        password="secret"
    )

    await connector.connect()
    result = await connector.execute_read_only("SELECT * FROM users LIMIT 10")
    await connector.close()
"""

import logging
import re
import time
from typing import Any, List, Optional

import asyncpg

from agentdb.connectors.base import (
    BaseConnector,
    ConnectionError,
    QueryError,
    QueryResult,
)

logger = logging.getLogger(__name__)

_STATUS_COUNT = re.compile(r"(\d+)\s*$")


def _count_from_status(status: str | None) -> int:
    """Extract the affected row count from a command tag like 'UPDATE 3'."""
    if not status:
        return 0
    match = _STATUS_COUNT.search(status)
    return int(match.group(1)) if match else 0


class PostgresConnector(BaseConnector):
    """
    PostgreSQL database connector using asyncpg.

    Provides async interface for PostgreSQL with connection pooling and
    a dedicated read-only execution mode.
    """

    def __init__(self, *args, connect_timeout: int = 10, **kwargs):
        super().__init__(*args, **kwargs)
        self.connect_timeout = connect_timeout

    async def connect(self) -> None:
        """
        Establish connection to PostgreSQL and create connection pool.

        Raises:
            ConnectionError: If connection fails
        """
        if self._connected and self._pool:
            logger.debug("Already connected, skipping connection")
            return

        try:
            logger.info(f"Connecting to PostgreSQL at {self.host}:{self.port}/{self.database}")

            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                min_size=1,
                max_size=self.pool_size,
                command_timeout=self.timeout,
                timeout=self.connect_timeout,
                **self.kwargs,
            )

            # Test connection
            async with self._pool.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
                logger.info(f"Connected to PostgreSQL: {version.split(',')[0]}")

            self._connected = True

        except asyncpg.PostgresError as e:
            logger.error(f"PostgreSQL connection failed: {e}")
            raise ConnectionError(f"Failed to connect to PostgreSQL: {e}") from e
        except Exception as e:
            logger.error(f"Unexpected error during connection: {e}")
            raise ConnectionError(f"Connection error: {e}") from e

    async def execute(
        self,
        query: str,
        params: Optional[List[Any]] = None,
    ) -> QueryResult:
        """
        Execute a statement in ordinary mode.

        Raises:
            QueryError: If the statement fails
            ConnectionError: If not connected
        """
        self._ensure_connected()
        start_time = time.perf_counter()

        try:
            async with self._pool.acquire() as conn:
                return await self._run(conn, query, params, start_time)
        except asyncpg.QueryCanceledError as e:
            logger.error(f"Statement timed out after {self.timeout}s: {query[:100]}...")
            raise QueryError(f"Query timeout ({self.timeout}s)") from e
        except asyncpg.PostgresError as e:
            logger.error(f"Query failed: {e}\nQuery: {query[:200]}...")
            raise QueryError(str(e)) from e
        except (OSError, asyncpg.InterfaceError) as e:
            logger.error(f"Connection lost during query: {e}")
            raise ConnectionError(f"Connection error: {e}") from e

    async def execute_read_only(
        self,
        query: str,
        params: Optional[List[Any]] = None,
    ) -> QueryResult:
        """
        Execute a statement inside a READ ONLY transaction.

        asyncpg rolls the transaction back when the block raises, so a
        failed statement never leaves the connection mid-transaction.

        Raises:
            QueryError: If the statement fails
            ConnectionError: If not connected
        """
        self._ensure_connected()
        start_time = time.perf_counter()

        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction(readonly=True):
                    return await self._run(conn, query, params, start_time)
        except asyncpg.QueryCanceledError as e:
            logger.error(f"Read-only statement timed out after {self.timeout}s: {query[:100]}...")
            raise QueryError(f"Query timeout ({self.timeout}s)") from e
        except asyncpg.PostgresError as e:
            logger.error(f"Read-only query failed: {e}\nQuery: {query[:200]}...")
            raise QueryError(str(e)) from e
        except (OSError, asyncpg.InterfaceError) as e:
            logger.error(f"Connection lost during query: {e}")
            raise ConnectionError(f"Connection error: {e}") from e

    async def _run(
        self,
        conn: asyncpg.Connection,
        query: str,
        params: Optional[List[Any]],
        start_time: float,
    ) -> QueryResult:
        try:
            statement = await conn.prepare(query)
        except asyncpg.PostgresSyntaxError as e:
            # Scripts with several statements cannot be prepared
            if params or "multiple commands" not in str(e):
                raise
            status = await conn.execute(query)
            return QueryResult(
                rows=[],
                row_count=_count_from_status(status),
                columns=[],
                execution_time_ms=self._elapsed(start_time),
            )

        records = await statement.fetch(*(params or []))
        columns = [attribute.name for attribute in statement.get_attributes()]
        rows = [dict(record) for record in records]

        if columns:
            row_count = len(rows)
        else:
            row_count = _count_from_status(statement.get_statusmsg())

        execution_time_ms = self._elapsed(start_time)
        logger.debug(
            f"Query executed in {execution_time_ms:.2f}ms, returned {row_count} rows",
            extra={"row_count": row_count, "duration_ms": execution_time_ms},
        )

        return QueryResult(
            rows=rows,
            row_count=row_count,
            columns=columns,
            execution_time_ms=execution_time_ms,
        )

    @staticmethod
    def _elapsed(start_time: float) -> float:
        return round((time.perf_counter() - start_time) * 1000, 2)

    def _ensure_connected(self) -> None:
        if not self._connected or not self._pool:
            raise ConnectionError("Not connected to database. Call connect() first.")

    async def close(self) -> None:
        """
        Close connection pool and clean up resources.

        Safe to call multiple times.
        """
        if not self._pool:
            logger.debug("No connection pool to close")
            return

        try:
            await self._pool.close()
            self._pool = None
            self._connected = False
            logger.info("PostgreSQL connection closed")
        except Exception as e:
            logger.error(f"Error closing connection: {e}")
            raise ConnectionError(f"Failed to close connection: {e}") from e
