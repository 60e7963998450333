"""
Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import json
import logging

import pytest

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires a PostgreSQL database and a model credential)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (may require external services)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 1 second)")
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled (use --run-integration to enable)."
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def configure_test_logging(caplog):
    """
    Configure logging for tests.

    Sets up log capture and configures log levels.
    This fixture runs automatically for all tests.
    """
    caplog.set_level(logging.DEBUG)
    yield


@pytest.fixture
def disable_logging():
    """
    Disable logging for specific tests.

    Use this for tests that generate excessive logs.
    """
    logging.disable(logging.CRITICAL)
    yield
    logging.disable(logging.NOTSET)


# ============================================================================
# Environment and Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """
    Point the persisted config at a temporary directory.

    Runs automatically so no test reads or writes ~/.agentdb, and the
    project .env never leaks into settings.
    """
    from agentdb import settings_store
    from agentdb.config import clear_settings_cache

    config_dir = tmp_path / ".agentdb"
    monkeypatch.setattr(settings_store, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(settings_store, "CONFIG_PATH", config_dir / "config.json")
    monkeypatch.setenv("AGENTDB_ENV_SOURCE", "environment")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    clear_settings_cache()
    yield config_dir
    clear_settings_cache()


# ============================================================================
# Test Utilities
# ============================================================================


@pytest.fixture
def mock_async_function():
    """
    Create a mock async function.

    Usage:
        def test_something(mock_async_function):
            mock = mock_async_function(return_value="result")
            result = await mock()
    """
    from unittest.mock import AsyncMock

    def _create_mock(**kwargs):
        return AsyncMock(**kwargs)

    return _create_mock


@pytest.fixture
def sse_body():
    """
    Build a server-sent-events body from event dicts.

    Usage:
        body = sse_body({"type": "response.output_text.delta", "delta": "Hi"})
    """

    def _build(*events, done: bool = True) -> bytes:
        lines = [f"data: {json.dumps(event)}\n\n" for event in events]
        if done:
            lines.append("data: [DONE]\n\n")
        return "".join(lines).encode("utf-8")

    return _build


# ============================================================================
# Mock Auth Provider
# ============================================================================


@pytest.fixture
def fake_auth():
    """
    Auth provider with in-memory tokens.

    Usage:
        auth = fake_auth("openai")
        auth.refreshed  # number of forced refreshes
    """
    from agentdb.auth.base import AuthProvider

    class FakeAuth(AuthProvider):
        def __init__(self, provider: str = "openai", model: str | None = None):
            self.provider = provider
            self.token = "token-1"
            self.refreshed = 0
            self.model = model
            self.chatgpt_account_id = "acct-123"

        async def get_access_token(self) -> str:
            return self.token

        async def refresh(self) -> str:
            self.refreshed += 1
            self.token = f"token-{self.refreshed + 1}"
            return self.token

        @property
        def preferred_model(self) -> str | None:
            return self.model

    return FakeAuth


# ============================================================================
# Mock Database Connectors
# ============================================================================


@pytest.fixture
def mock_postgres_connector():
    """
    Mock PostgreSQL connector for testing.

    Usage:
        def test_query(mock_postgres_connector):
            mock_postgres_connector.execute_read_only.return_value = QueryResult(...)
    """
    from unittest.mock import AsyncMock, MagicMock

    from agentdb.connectors.base import BaseConnector

    connector = MagicMock(spec=BaseConnector)
    connector.connect = AsyncMock()
    connector.close = AsyncMock()
    connector.execute = AsyncMock()
    connector.execute_read_only = AsyncMock()

    return connector


# ============================================================================
# Common Test Data
# ============================================================================


@pytest.fixture
def shop_catalog() -> dict:
    """
    Catalog rows of a small shop database.

    customers <- orders <- order_items -> products, plus a view and an
    audit table in a second schema.
    """
    return {
        "database_name": "shop",
        "version_banner": "PostgreSQL 16.2 on x86_64-pc-linux-gnu, compiled by gcc",
        "table_rows": [
            {"table_schema": "public", "table_name": "customers", "table_type": "BASE TABLE",
             "comment": "People who buy things", "estimated_rows": 1200},
            {"table_schema": "public", "table_name": "orders", "table_type": "BASE TABLE",
             "comment": None, "estimated_rows": 5400},
            {"table_schema": "public", "table_name": "order_items", "table_type": "BASE TABLE",
             "comment": None, "estimated_rows": -1},
            {"table_schema": "public", "table_name": "products", "table_type": "BASE TABLE",
             "comment": None, "estimated_rows": 80},
            {"table_schema": "public", "table_name": "order_totals", "table_type": "VIEW",
             "comment": None, "estimated_rows": 0},
            {"table_schema": "audit", "table_name": "events", "table_type": "BASE TABLE",
             "comment": None, "estimated_rows": None},
        ],
        "column_rows": [
            {"table_schema": "public", "table_name": "customers", "column_name": "id",
             "data_type": "integer", "character_maximum_length": None, "is_nullable": "NO",
             "column_default": "nextval('customers_id_seq'::regclass)", "comment": None},
            {"table_schema": "public", "table_name": "customers", "column_name": "email",
             "data_type": "character varying", "character_maximum_length": 255,
             "is_nullable": "NO", "column_default": None, "comment": None},
            {"table_schema": "public", "table_name": "customers", "column_name": "created_at",
             "data_type": "timestamp with time zone", "character_maximum_length": None,
             "is_nullable": "YES", "column_default": "now()", "comment": None},
            {"table_schema": "public", "table_name": "orders", "column_name": "id",
             "data_type": "integer", "character_maximum_length": None, "is_nullable": "NO",
             "column_default": None, "comment": None},
            {"table_schema": "public", "table_name": "orders", "column_name": "customer_id",
             "data_type": "integer", "character_maximum_length": None, "is_nullable": "NO",
             "column_default": None, "comment": None},
            {"table_schema": "public", "table_name": "orders", "column_name": "total",
             "data_type": "numeric", "character_maximum_length": None, "is_nullable": "YES",
             "column_default": None, "comment": None},
            {"table_schema": "public", "table_name": "order_items", "column_name": "order_id",
             "data_type": "integer", "character_maximum_length": None, "is_nullable": "NO",
             "column_default": None, "comment": None},
            {"table_schema": "public", "table_name": "order_items", "column_name": "product_id",
             "data_type": "integer", "character_maximum_length": None, "is_nullable": "NO",
             "column_default": None, "comment": None},
            {"table_schema": "public", "table_name": "products", "column_name": "id",
             "data_type": "integer", "character_maximum_length": None, "is_nullable": "NO",
             "column_default": None, "comment": None},
            {"table_schema": "public", "table_name": "products", "column_name": "price",
             "data_type": "double precision", "character_maximum_length": None,
             "is_nullable": "YES", "column_default": None, "comment": None},
            {"table_schema": "public", "table_name": "order_totals", "column_name": "order_id",
             "data_type": "integer", "character_maximum_length": None, "is_nullable": "YES",
             "column_default": None, "comment": None},
            {"table_schema": "audit", "table_name": "events", "column_name": "payload",
             "data_type": "jsonb", "character_maximum_length": None, "is_nullable": "YES",
             "column_default": None, "comment": None},
        ],
        "pk_rows": [
            {"table_schema": "public", "table_name": "customers", "column_name": "id"},
            {"table_schema": "public", "table_name": "orders", "column_name": "id"},
            {"table_schema": "public", "table_name": "products", "column_name": "id"},
        ],
        "fk_rows": [
            {"table_schema": "public", "table_name": "orders", "column_name": "customer_id",
             "referenced_schema": "public", "referenced_table": "customers",
             "referenced_column": "id"},
            {"table_schema": "public", "table_name": "order_items", "column_name": "order_id",
             "referenced_schema": "public", "referenced_table": "orders",
             "referenced_column": "id"},
            {"table_schema": "public", "table_name": "order_items", "column_name": "product_id",
             "referenced_schema": "public", "referenced_table": "products",
             "referenced_column": "id"},
        ],
        "index_rows": [
            {"schemaname": "public", "tablename": "customers", "indexname": "customers_pkey",
             "indexdef": "CREATE UNIQUE INDEX customers_pkey ON public.customers USING btree (id)"},
            {"schemaname": "public", "tablename": "customers",
             "indexname": "customers_email_key",
             "indexdef": "CREATE UNIQUE INDEX customers_email_key ON public.customers "
                         "USING btree (email)"},
            {"schemaname": "public", "tablename": "orders", "indexname": "orders_customer_idx",
             "indexdef": "CREATE INDEX orders_customer_idx ON public.orders "
                         "USING btree (customer_id, \"total\")"},
        ],
    }


@pytest.fixture
def catalog_results(shop_catalog):
    """Catalog query results of ``shop_catalog`` in the order map_database() issues them."""
    from agentdb.connectors.base import QueryResult

    def _result(rows):
        return QueryResult(rows=rows, row_count=len(rows), execution_time_ms=1.0)

    return [
        _result([{"current_database": shop_catalog["database_name"]}]),
        _result([{"version": shop_catalog["version_banner"]}]),
        _result(shop_catalog["table_rows"]),
        _result(shop_catalog["column_rows"]),
        _result(shop_catalog["pk_rows"]),
        _result(shop_catalog["fk_rows"]),
        _result(shop_catalog["index_rows"]),
    ]
