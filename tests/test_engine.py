"""Tests for the query intelligence engine."""

from unittest.mock import AsyncMock

import pytest

from polenta_mcp.errors import BackendError, ErrorCategory, InvalidParamsError
from polenta_mcp.intelligence.engine import QUERY_SUGGESTIONS, QueryIntelligenceEngine
from polenta_mcp.metadata import MetadataCache
from polenta_mcp.models import ErrorEnvelope, SuccessEnvelope


@pytest.fixture
def engine(fake_client):
    return QueryIntelligenceEngine(fake_client, MetadataCache(fake_client))


@pytest.fixture
def ambiguous_catalog(catalog):
    catalog["archive"] = {"orders": ["order_id"]}
    return catalog


class TestProcessRouting:
    @pytest.mark.asyncio
    async def test_show_tables_groups_by_schema(self, make_client, catalog):
        client = make_client(catalog, failing_schemas=("crm",))
        engine = QueryIntelligenceEngine(client, MetadataCache(client))

        envelope = await engine.process("show all tables")

        assert isinstance(envelope, SuccessEnvelope)
        assert envelope.type == "table_list"
        # crm failed and archive is empty
        assert envelope.payload["schemas"] == {"ventas": ["vendedores", "orders"]}

    @pytest.mark.asyncio
    async def test_accessible_tables(self, engine, fake_client):
        fake_client.accessible_tables.return_value = ["crm.customers"]

        envelope = await engine.process("which tables can I access?")

        assert envelope.type == "accessible_table_list"
        assert envelope.payload["tables"] == ["crm.customers"]

    @pytest.mark.asyncio
    async def test_unknown_request_asks_to_refine(self, engine):
        envelope = await engine.process("xyz")

        assert isinstance(envelope, ErrorEnvelope)
        assert envelope.category == ErrorCategory.INVALID_PARAMS
        assert "refine" in envelope.message

    @pytest.mark.asyncio
    async def test_direct_sql(self, engine, fake_client):
        fake_client.execute.return_value = [{"order_id": 1}, {"order_id": 2}]

        envelope = await engine.process("select * from ventas.orders;")

        assert envelope.type == "query_result"
        assert envelope.payload["sql"] == "select * from ventas.orders"
        assert envelope.payload["row_count"] == 2
        fake_client.execute.assert_awaited_once_with("select * from ventas.orders")

    @pytest.mark.asyncio
    async def test_backend_failure_becomes_envelope(self, engine, fake_client):
        fake_client.execute.side_effect = BackendError("Query failed: line 1:1: mismatched input")

        envelope = await engine.process("select from")

        assert envelope.category == ErrorCategory.BACKEND
        assert "mismatched input" in envelope.message

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_internal_with_diagnostic_id(self, engine, fake_client):
        fake_client.list_schemas.side_effect = RuntimeError("driver bug")

        envelope = await engine.process("show all tables")

        assert envelope.category == ErrorCategory.INTERNAL
        assert envelope.diagnostic_id
        assert "driver bug" not in envelope.message

    @pytest.mark.asyncio
    async def test_search_from_text(self, engine, fake_client):
        fake_client.search_tables.return_value = ["crm.customers"]

        envelope = await engine.process("search for customer tables")

        assert envelope.type == "table_search"
        assert envelope.payload["keyword"] == "customer"
        fake_client.search_tables.assert_awaited_once_with("customer")


class TestDescribeTable:
    @pytest.mark.asyncio
    async def test_unqualified_name_in_one_schema(self, engine, fake_client):
        envelope = await engine.process("describe table CUSTOMERS")

        assert envelope.type == "table_description"
        assert envelope.payload["schema"] == "crm"
        assert envelope.payload["table"] == "customers"
        assert [c["Column"] for c in envelope.payload["columns"]] == ["customer_id", "name"]
        fake_client.describe_columns.assert_awaited_once_with("crm", "customers")

    @pytest.mark.asyncio
    async def test_qualified_name_skips_lookup(self, engine, fake_client):
        await engine.describe_table("ventas.orders")

        fake_client.list_schemas.assert_not_awaited()
        fake_client.describe_columns.assert_awaited_once_with("ventas", "orders")

    @pytest.mark.asyncio
    async def test_missing_table_names_it(self, engine):
        envelope = await engine.process("describe table invoices")

        assert envelope.category == ErrorCategory.INVALID_PARAMS
        assert "invoices" in envelope.message

    @pytest.mark.asyncio
    async def test_ambiguous_table_is_an_error(self, make_client, ambiguous_catalog):
        client = make_client(ambiguous_catalog)
        engine = QueryIntelligenceEngine(client, MetadataCache(client))

        envelope = await engine.process("describe table orders")

        assert envelope.category == ErrorCategory.INVALID_PARAMS
        assert "ambiguous" in envelope.message
        assert envelope.details["candidates"] == ["ventas.orders", "archive.orders"]
        client.describe_columns.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_loaded_snapshot_answers_lookup(self, fake_client):
        cache = MetadataCache(fake_client)
        await cache.load()
        engine = QueryIntelligenceEngine(fake_client, cache)
        fake_client.list_schemas.reset_mock()

        envelope = await engine.describe_table("Customers")

        assert envelope.payload["schema"] == "crm"
        assert envelope.payload["table"] == "customers"
        fake_client.list_schemas.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_table_newer_than_snapshot_falls_back_to_backend(self, fake_client, catalog):
        cache = MetadataCache(fake_client)
        await cache.load()
        engine = QueryIntelligenceEngine(fake_client, cache)
        catalog["archive"]["invoices"] = ["invoice_id"]

        envelope = await engine.describe_table("invoices")

        assert envelope.payload["schema"] == "archive"
        fake_client.describe_columns.assert_awaited_with("archive", "invoices")

    @pytest.mark.asyncio
    async def test_ambiguous_in_snapshot(self, make_client, ambiguous_catalog):
        client = make_client(ambiguous_catalog)
        cache = MetadataCache(client)
        await cache.load()
        engine = QueryIntelligenceEngine(client, cache)
        client.list_schemas.reset_mock()

        with pytest.raises(InvalidParamsError, match="ambiguous"):
            await engine.resolve_table("orders")

        client.list_schemas.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_catalog_qualified_name_is_refused(self, engine, fake_client):
        envelope = await engine.process("describe table hive.crm.customers")

        assert envelope.category == ErrorCategory.INVALID_PARAMS
        assert envelope.details == {"table_name": "hive.crm.customers"}
        fake_client.describe_columns.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreadable_schema_is_skipped(self, make_client, catalog):
        client = make_client(catalog, failing_schemas=("ventas",))
        engine = QueryIntelligenceEngine(client, MetadataCache(client))

        envelope = await engine.describe_table("customers")

        assert envelope.payload["schema"] == "crm"


class TestSampleData:
    @pytest.mark.asyncio
    async def test_sample_is_limited(self, make_client, catalog):
        client = make_client(catalog, rows=[{"id": i} for i in range(10)])
        engine = QueryIntelligenceEngine(client, MetadataCache(client))

        envelope = await engine.process("show me data from orders")

        assert envelope.type == "sample_data"
        assert envelope.payload["row_count"] <= 10
        client.sample_rows.assert_awaited_once_with("ventas", "orders", limit=10)


class TestListEntity:
    @pytest.mark.asyncio
    async def test_resolves_single_table(self, engine, fake_client):
        fake_client.execute.return_value = [{"vendedor_id": 1, "nombre": "Ana"}]

        envelope = await engine.process("Lista de vendedores")

        assert envelope.type == "entity_list"
        assert envelope.payload["entity"] == "vendedor"
        assert envelope.payload["table"] == "ventas.vendedores"
        assert envelope.payload["row_count"] == 1
        fake_client.execute.assert_awaited_once_with("SELECT * FROM ventas.vendedores")

    @pytest.mark.asyncio
    async def test_accents_are_folded(self, engine):
        envelope = await engine.process("Lista de países")

        assert envelope.payload["table"] == "crm.paises"

    @pytest.mark.asyncio
    async def test_loads_cache_on_first_use(self, engine, fake_client):
        await engine.list_entity("customer")
        await engine.list_entity("customer")

        assert fake_client.list_schemas.await_count == 1

    @pytest.mark.asyncio
    async def test_no_match(self, engine):
        envelope = await engine.process("list of invoices")

        assert envelope.category == ErrorCategory.INVALID_PARAMS
        assert "invoic" in envelope.message

    @pytest.mark.asyncio
    async def test_several_matches_are_an_error(self, make_client, ambiguous_catalog):
        client = make_client(ambiguous_catalog)
        engine = QueryIntelligenceEngine(client, MetadataCache(client))

        envelope = await engine.process("list of orders")

        assert envelope.category == ErrorCategory.INVALID_PARAMS
        assert envelope.details["candidates"] == ["ventas.orders", "archive.orders"]
        client.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_schema_scope_disambiguates(self, make_client, ambiguous_catalog):
        client = make_client(ambiguous_catalog)
        engine = QueryIntelligenceEngine(client, MetadataCache(client))

        envelope = await engine.process("list of orders in schema archive")

        assert envelope.payload["table"] == "archive.orders"


class TestStructuredOperations:
    @pytest.mark.asyncio
    async def test_empty_keyword_rejected(self, engine):
        with pytest.raises(InvalidParamsError, match="keyword"):
            await engine.search_tables("   ")

    def test_suggestions(self, engine):
        envelope = engine.suggestions()

        assert envelope.type == "suggestions"
        assert envelope.payload["suggestions"] == list(QUERY_SUGGESTIONS)
        assert "Lista de países" in envelope.payload["suggestions"]

    @pytest.mark.asyncio
    async def test_envelope_stamps(self, engine, fake_client):
        fake_client.accessible_tables = AsyncMock(return_value=[])

        data = (await engine.accessible_tables()).to_dict()

        assert data["status"] == "success"
        assert data["execution_id"]
        assert isinstance(data["timestamp"], int)
        assert data["user_message"] == data["message"]
