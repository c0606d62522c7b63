"""Shared fixtures: settings and a fake SQL engine client backed by a dict catalog."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from polenta_mcp.config import Settings, reset_settings
from polenta_mcp.db.client import SQLEngineClient
from polenta_mcp.errors import BackendError


@pytest.fixture(autouse=True)
def clean_settings():
    """Reset cached settings between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        presto_url="trino://analyst@localhost:8080/hive",
        presto_max_retries=3,
        presto_retry_backoff_ms=1000,
        presto_max_rows=10,
        load_metadata_on_startup=True,
        metadata_refresh_seconds=0,
    )


@pytest.fixture
def catalog() -> dict[str, dict[str, list[str]]]:
    """schema -> table -> column names."""
    return {
        "ventas": {
            "vendedores": ["vendedor_id", "nombre"],
            "orders": ["order_id", "amount"],
        },
        "crm": {
            "customers": ["customer_id", "name"],
            "paises": ["codigo", "nombre"],
        },
        "archive": {},
    }


@pytest.fixture
def make_client():
    """Build a fake SQLEngineClient over a catalog.

    Schemas listed in ``failing_schemas`` raise BackendError when their
    tables are listed.
    """

    def _make(catalog, failing_schemas=(), rows=None):
        client = MagicMock(spec=SQLEngineClient)

        async def list_tables(schema):
            if schema in failing_schemas:
                raise BackendError(f"Access denied to schema {schema}")
            return list(catalog.get(schema, {}))

        async def describe_columns(schema, table):
            return [
                {"Column": column, "Type": "varchar", "Extra": "", "Comment": ""}
                for column in catalog[schema][table]
            ]

        client.list_schemas = AsyncMock(return_value=list(catalog))
        client.list_tables = AsyncMock(side_effect=list_tables)
        client.describe_columns = AsyncMock(side_effect=describe_columns)
        client.sample_rows = AsyncMock(return_value=rows if rows is not None else [{"id": 1}])
        client.execute = AsyncMock(return_value=rows if rows is not None else [{"id": 1}])
        client.search_tables = AsyncMock(return_value=[])
        client.accessible_tables = AsyncMock(return_value=[])
        client.test_connection = AsyncMock(return_value=True)
        return client

    return _make


@pytest.fixture
def fake_client(make_client, catalog):
    return make_client(catalog)
