"""Connector factory for supported database URLs."""

from __future__ import annotations

from urllib.parse import unquote, urlparse

from agentdb.connectors.base import BaseConnector
from agentdb.connectors.postgres import PostgresConnector

_POSTGRES_SCHEMES = {"postgres", "postgresql"}


def create_connector(
    *,
    database_url: str,
    pool_size: int = 5,
    timeout: int = 30,
    **kwargs,
) -> BaseConnector:
    """Create a connector instance from a PostgreSQL URL."""
    parsed = _parse_url(database_url)
    scheme = parsed.scheme.split("+")[0].lower()
    if scheme not in _POSTGRES_SCHEMES:
        raise ValueError(f"Unsupported database URL scheme: {parsed.scheme}")
    if not parsed.hostname:
        raise ValueError("Invalid database URL: host is required.")

    db_name = parsed.path.lstrip("/")
    return PostgresConnector(
        host=parsed.hostname,
        port=parsed.port or 5432,
        database=db_name or "postgres",
        user=unquote(parsed.username) if parsed.username else "postgres",
        password=unquote(parsed.password) if parsed.password else "",
        pool_size=pool_size,
        timeout=timeout,
        **kwargs,
    )


def mask_url(database_url: str) -> str:
    """Hide the password in a connection URL for display."""
    parsed = _parse_url(database_url)
    if not parsed.password:
        return database_url
    netloc = parsed.netloc.replace(f":{parsed.password}@", ":****@", 1)
    return parsed._replace(netloc=netloc).geturl()


def _parse_url(database_url: str):
    normalized = database_url.replace("postgresql+asyncpg://", "postgresql://")
    return urlparse(normalized)
