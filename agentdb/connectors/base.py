"""
Base Database Connector

Abstract base class for the database collaborator. Provides a consistent
async interface for connecting to and querying the target database.

All connectors must implement:
- connect(): Establish connection with connection pooling
- execute(): Run a statement in ordinary mode
- execute_read_only(): Run a statement inside a read-only transaction
- close(): Clean up connections and pools
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ============================================================================
# Data Models
# ============================================================================


class QueryResult(BaseModel):
    """Result from statement execution."""

    rows: list[dict[str, Any]] = Field(default_factory=list, description="Result rows")
    row_count: int = Field(..., ge=0, description="Rows returned or affected")
    columns: list[str] = Field(default_factory=list, description="Column names")
    execution_time_ms: float = Field(..., description="Execution time in ms")


class ConnectorError(Exception):
    """Base exception for connector errors."""

    pass


class ConnectionError(ConnectorError):
    """Error establishing or managing database connection."""

    pass


class QueryError(ConnectorError):
    """Error executing a statement."""

    pass


# ============================================================================
# Base Connector
# ============================================================================


class BaseConnector(ABC):
    """
    Abstract base class for database connectors.

    The agent only needs two execution modes: ordinary execution for
    statements that may write, and a read-only transactional mode for
    everything else. Both return the same QueryResult shape.

    Usage:
        connector = PostgresConnector(host="localhost", ...)
        await connector.connect()

        result = await connector.execute_read_only("SELECT * FROM users")
        print(f"Found {result.row_count} rows")

        await connector.close()
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        pool_size: int = 5,
        timeout: int = 30,
        **kwargs,
    ):
        """
        Initialize connector.

        Args:
            host: Database host
            port: Database port
            database: Database name
            user: Database user
            password: Database password
            pool_size: Connection pool size (default: 5)
            timeout: Driver command timeout in seconds (default: 30)
            **kwargs: Additional connector-specific parameters
        """
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.pool_size = pool_size
        self.timeout = timeout
        self.kwargs = kwargs

        self._pool = None
        self._connected = False

        logger.info(f"Initialized {self.__class__.__name__} for {user}@{host}:{port}/{database}")

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish database connection and create connection pool.

        Should be idempotent - calling multiple times should not create
        multiple pools.

        Raises:
            ConnectionError: If connection fails
        """
        pass

    @abstractmethod
    async def execute(
        self,
        query: str,
        params: list[Any] | None = None,
    ) -> QueryResult:
        """
        Execute a statement in ordinary (read/write) mode.

        Args:
            query: SQL statement (use $1, $2 for parameters)
            params: Query parameters (optional)

        Returns:
            QueryResult with rows, columns, and timing

        Raises:
            QueryError: If execution fails
            ConnectionError: If not connected
        """
        pass

    @abstractmethod
    async def execute_read_only(
        self,
        query: str,
        params: list[Any] | None = None,
    ) -> QueryResult:
        """
        Execute a statement inside an explicit read-only transaction.

        The transaction is rolled back on any failure before the error
        is raised.

        Raises:
            QueryError: If execution fails (including attempted writes)
            ConnectionError: If not connected
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close database connection and clean up pool.

        Should be idempotent - safe to call multiple times.
        """
        pass

    @property
    def is_connected(self) -> bool:
        """Check if connector is connected."""
        return self._connected

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
        return False

    def __repr__(self) -> str:
        """String representation."""
        status = "connected" if self._connected else "disconnected"
        return f"<{self.__class__.__name__} {self.user}@{self.host}:{self.port}/{self.database} ({status})>"
