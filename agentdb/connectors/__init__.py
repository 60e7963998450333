"""
Database Connectors Module

Provides the async database collaborator used by the schema engine and
the query executor.

Available Connectors:
    - BaseConnector: Abstract base class
    - PostgresConnector: PostgreSQL connector (asyncpg)

Usage:
    from agentdb.connectors import create_connector

    connector = create_connector(database_url="postgresql://u:p@localhost/mydb")

    async with connector:
        result = await connector.execute_read_only("SELECT * FROM users")
"""

from agentdb.connectors.base import (
    BaseConnector,
    ConnectionError,
    ConnectorError,
    QueryError,
    QueryResult,
)
from agentdb.connectors.factory import create_connector, mask_url
from agentdb.connectors.postgres import PostgresConnector

__all__ = [
    "BaseConnector",
    "PostgresConnector",
    "create_connector",
    "mask_url",
    "QueryResult",
    "ConnectorError",
    "ConnectionError",
    "QueryError",
]
