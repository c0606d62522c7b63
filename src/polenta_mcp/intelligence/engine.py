"""Query intelligence: turn a classified request into backend calls and an envelope."""

import logging
from collections.abc import Awaitable, Callable

from polenta_mcp.db.client import SQLEngineClient, qualified_name
from polenta_mcp.errors import InvalidParamsError, PolentaError
from polenta_mcp.intelligence.parser import (
    OperationType,
    QueryParser,
    fold_accents,
    split_qualified_name,
)
from polenta_mcp.metadata import MetadataCache
from polenta_mcp.models import Envelope, SuccessEnvelope, error_envelope, success

logger = logging.getLogger(__name__)

SAMPLE_ROW_LIMIT = 10

QUERY_SUGGESTIONS: tuple[str, ...] = (
    "Show all tables",
    "List tables in schema_name",
    "Describe table table_name",
    "Show sample data from table_name",
    "Find tables containing keyword",
    "SELECT * FROM schema.table LIMIT 10",
    "Lista de países",
    "Lista de vendedores",
)

_MISSING_TABLE_MESSAGE = "Could not identify the table name in the request. Please specify a table."


class QueryIntelligenceEngine:
    """Answers natural-language and SQL requests against the engine.

    ``process()`` classifies free text and always returns an envelope. The
    structured methods (``describe_table()``, ``sample_data()``, ...) raise
    ``PolentaError`` subclasses and are meant for callers that already hold
    typed arguments.
    """

    def __init__(
        self,
        client: SQLEngineClient,
        cache: MetadataCache,
        parser: QueryParser | None = None,
    ):
        self._client = client
        self._cache = cache
        self._parser = parser or QueryParser()
        self._handlers: dict[OperationType, Callable[[str], Awaitable[SuccessEnvelope]]] = {
            OperationType.SHOW_TABLES: lambda text: self.show_tables(),
            OperationType.ACCESSIBLE_TABLES: lambda text: self.accessible_tables(),
            OperationType.DESCRIBE_TABLE: self._describe_from_text,
            OperationType.SAMPLE_DATA: self._sample_from_text,
            OperationType.SEARCH_TABLES: self._search_from_text,
            OperationType.LIST_ENTITY: self._list_entity_from_text,
            OperationType.DIRECT_SQL: self.direct_sql,
        }

    @property
    def parser(self) -> QueryParser:
        return self._parser

    async def process(self, text: str) -> Envelope:
        """Classify a free-text request, run it and wrap the outcome."""
        logger.info("Processing natural language query: %s", text)
        try:
            operation = self._parser.classify(text)
            handler = self._handlers.get(operation)
            if handler is None:
                raise InvalidParamsError(
                    "Could not determine the query type. Please refine your request.",
                    details={"query": text},
                )
            logger.debug("Query classified as %s", operation.value)
            return await handler(text)
        except Exception as e:
            if isinstance(e, PolentaError):
                logger.warning(f"Query failed ({e.category.value}): {e.message}")
            return error_envelope(e, logger)

    # =========================================================================
    # Free-text adapters
    # =========================================================================

    async def _describe_from_text(self, text: str) -> SuccessEnvelope:
        table_name = self._parser.extract_table_name(text)
        if not table_name:
            raise InvalidParamsError(_MISSING_TABLE_MESSAGE)
        return await self.describe_table(table_name)

    async def _sample_from_text(self, text: str) -> SuccessEnvelope:
        table_name = self._parser.extract_table_name(text)
        if not table_name:
            raise InvalidParamsError(_MISSING_TABLE_MESSAGE)
        return await self.sample_data(table_name)

    async def _search_from_text(self, text: str) -> SuccessEnvelope:
        keyword = self._parser.extract_search_keyword(text)
        if not keyword:
            raise InvalidParamsError("Could not identify the search keyword in the request.")
        return await self.search_tables(keyword)

    async def _list_entity_from_text(self, text: str) -> SuccessEnvelope:
        entity = self._parser.extract_entity(text)
        if not entity:
            raise InvalidParamsError("Could not identify the entity in the request.")
        return await self.list_entity(entity, self._parser.extract_schema_name(text))

    # =========================================================================
    # Operations
    # =========================================================================

    async def show_tables(self) -> SuccessEnvelope:
        """Tables grouped by schema; unreadable and empty schemas are left out."""
        grouped: dict[str, list[str]] = {}
        for schema in await self._client.list_schemas():
            try:
                tables = await self._client.list_tables(schema)
            except PolentaError as e:
                logger.warning(f"Could not access schema {schema}: {e.message}")
                continue
            if tables:
                grouped[schema] = tables
        return success("table_list", "Available tables grouped by schema", schemas=grouped)

    async def accessible_tables(self) -> SuccessEnvelope:
        tables = await self._client.accessible_tables()
        return success("accessible_table_list", "Tables available for querying", tables=tables)

    async def resolve_table(self, table_name: str) -> tuple[str, str]:
        """Find the schema holding a table.

        A qualified name is taken as-is. An unqualified one is looked up in
        every schema (case-insensitive) and must match exactly one. The
        metadata snapshot is consulted first; the backend is walked when the
        snapshot is not loaded or does not know the table.

        Raises:
            InvalidParamsError: If the table is in no schema or in several
        """
        schema, table = split_qualified_name(table_name)
        if not table:
            raise InvalidParamsError(_MISSING_TABLE_MESSAGE)
        if schema:
            return schema, table

        candidates = self._cache.find_tables(table) if self._cache.is_loaded else []
        if not candidates:
            candidates = await self._find_in_backend(table)

        if not candidates:
            raise InvalidParamsError(
                f"No schema found for table: {table}", details={"table": table}
            )
        if len(candidates) > 1:
            names = [f"{s}.{t}" for s, t in candidates]
            raise InvalidParamsError(
                f"Table '{table}' is ambiguous, it exists in several schemas. "
                f"Qualify it as schema.table. Matches: {', '.join(names)}",
                details={"table": table, "candidates": names},
            )
        return candidates[0]

    async def _find_in_backend(self, table: str) -> list[tuple[str, str]]:
        candidates: list[tuple[str, str]] = []
        for schema in await self._client.list_schemas():
            try:
                tables = await self._client.list_tables(schema)
            except PolentaError as e:
                logger.warning(f"Could not access schema {schema}: {e.message}")
                continue
            candidates.extend((schema, t) for t in tables if t.lower() == table.lower())
        return candidates

    async def describe_table(self, table_name: str) -> SuccessEnvelope:
        schema, table = await self.resolve_table(table_name)
        columns = await self._client.describe_columns(schema, table)
        return success(
            "table_description",
            f"Structure of table {schema}.{table}",
            schema=schema,
            table=table,
            columns=columns,
        )

    async def sample_data(self, table_name: str) -> SuccessEnvelope:
        schema, table = await self.resolve_table(table_name)
        rows = await self._client.sample_rows(schema, table, limit=SAMPLE_ROW_LIMIT)
        return success(
            "sample_data",
            f"Sample data from {schema}.{table} (limited to {SAMPLE_ROW_LIMIT} rows)",
            schema=schema,
            table=table,
            data=rows,
            row_count=len(rows),
        )

    async def search_tables(self, keyword: str) -> SuccessEnvelope:
        keyword = keyword.strip()
        if not keyword:
            raise InvalidParamsError("Search keyword must not be empty")
        matches = await self._client.search_tables(keyword)
        return success(
            "table_search",
            f"Tables matching keyword '{keyword}'",
            keyword=keyword,
            matching_tables=matches,
        )

    async def list_entity(self, entity: str, schema: str | None = None) -> SuccessEnvelope:
        """Resolve an entity noun to exactly one cached table and list its rows.

        A table matches when its accent-folded name contains the entity.
        """
        if not self._cache.is_loaded:
            await self._cache.load()

        needle = fold_accents(entity)
        matches = [
            (s, t)
            for s in self._cache.schemas()
            if schema is None or s.lower() == schema.lower()
            for t in self._cache.tables(s)
            if needle in fold_accents(t)
        ]

        scope = f" in schema {schema}" if schema else ""
        if not matches:
            raise InvalidParamsError(
                f"No table found for entity: {entity}{scope}",
                details={"entity": entity, "schema": schema},
            )
        if len(matches) > 1:
            names = [f"{s}.{t}" for s, t in matches]
            raise InvalidParamsError(
                f"Several tables match entity '{entity}'{scope}. Specify the table. "
                f"Matches: {', '.join(names)}",
                details={"entity": entity, "candidates": names},
            )

        match_schema, match_table = matches[0]
        rows = await self._client.execute(f"SELECT * FROM {qualified_name(match_schema, match_table)}")
        return success(
            "entity_list",
            f"List of {entity}, {len(rows)} found",
            entity=entity,
            table=f"{match_schema}.{match_table}",
            data=rows,
            row_count=len(rows),
        )

    async def direct_sql(self, sql: str) -> SuccessEnvelope:
        statement = sql.strip().rstrip(";").strip()
        if not statement:
            raise InvalidParamsError("SQL statement must not be empty")
        rows = await self._client.execute(statement)
        return success(
            "query_result",
            f"Query executed successfully, {len(rows)} rows returned",
            sql=statement,
            data=rows,
            row_count=len(rows),
        )

    def suggestions(self) -> SuccessEnvelope:
        return success("suggestions", "Example queries", suggestions=list(QUERY_SUGGESTIONS))
