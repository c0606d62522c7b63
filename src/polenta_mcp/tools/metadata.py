"""Metadata navigation tools served from the cache."""

from polenta_mcp.db.client import SQLEngineClient
from polenta_mcp.metadata import MetadataCache
from polenta_mcp.models import SuccessEnvelope, success


class MetadataTools:
    """``schemas``, ``tables``, ``columns`` and the unified ``metadata`` tool."""

    def __init__(self, cache: MetadataCache, client: SQLEngineClient):
        self._cache = cache
        self._client = client

    def schemas(self) -> SuccessEnvelope:
        return success("schema_list", "List of available schemas", schemas=self._cache.schemas())

    def tables(self, schema: str) -> SuccessEnvelope:
        return success(
            "schema_tables",
            f"List of tables in schema {schema}",
            schema=schema,
            tables=self._cache.tables(schema),
        )

    def columns(self, schema: str, table: str) -> SuccessEnvelope:
        return success(
            "table_columns",
            f"List of columns of {schema}.{table}",
            schema=schema,
            table=table,
            columns=self._cache.columns(schema, table),
        )

    async def metadata(self, schema: str | None = None, table: str | None = None) -> SuccessEnvelope:
        """Schemas, the tables of a schema, or a live column description.

        Describing a table goes to the engine so column types are included.
        """
        if not schema:
            return self.schemas()
        if not table:
            return self.tables(schema)
        columns = await self._client.describe_columns(schema, table)
        return success(
            "table_description",
            f"Structure of table {schema}.{table}",
            schema=schema,
            table=table,
            columns=columns,
        )
