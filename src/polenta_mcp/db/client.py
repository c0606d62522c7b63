"""SQL engine client: pooled execution with retry, discovery and access probing."""

import asyncio
import logging
import re
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import requests
from opentelemetry import trace
from sqlalchemy import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from trino import exceptions as trino_exceptions

from polenta_mcp.config import Settings
from polenta_mcp.db.connection import create_pooled_engine
from polenta_mcp.errors import BackendError, InvalidParamsError, PolentaError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Trino error types worth another attempt
TRANSIENT_ERROR_TYPES = frozenset({"INSUFFICIENT_RESOURCES", "EXTERNAL"})

# the driver re-raises requests errors once its own HTTP retries run out
_TRANSIENT_EXCEPTIONS = (
    ConnectionError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    trino_exceptions.TrinoConnectionError,
    trino_exceptions.Http502Error,
    trino_exceptions.Http503Error,
    trino_exceptions.Http504Error,
)

_SIMPLE_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

SYSTEM_SCHEMAS = frozenset({"information_schema"})


def is_transient_error(exc: BaseException) -> bool:
    """Return True if a failed attempt may succeed when retried."""
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        return exc.orig is not None and is_transient_error(exc.orig)
    if isinstance(exc, _TRANSIENT_EXCEPTIONS):
        return True
    return getattr(exc, "error_type", None) in TRANSIENT_ERROR_TYPES


def describe_error(exc: BaseException) -> str:
    """One-line, user-safe description of a backend failure."""
    if isinstance(exc, PoolTimeoutError):
        return "no database connection available (pool exhausted)"
    cause = exc.orig if isinstance(exc, DBAPIError) and exc.orig is not None else exc
    message = getattr(cause, "message", None) or str(cause) or type(cause).__name__
    first_line = str(message).strip().splitlines()[0] if str(message).strip() else message
    return first_line[:300]


def quote_identifier(name: str) -> str:
    """Render a schema or table name for interpolation into SQL.

    Simple names pass through unchanged; anything else is double-quoted.

    Raises:
        InvalidParamsError: For empty names or names containing a double quote
    """
    if not name or '"' in name:
        raise InvalidParamsError(f"Invalid identifier: {name!r}")
    if _SIMPLE_IDENTIFIER.fullmatch(name):
        return name
    return f'"{name}"'


def qualified_name(schema: str, table: str) -> str:
    return f"{quote_identifier(schema)}.{quote_identifier(table)}"


def _column_value(row: dict[str, Any], key: str) -> Any:
    """Read a named column, falling back to the first column of the row."""
    if key in row:
        return row[key]
    for alternative in (key.lower(), key.upper()):
        if alternative in row:
            return row[alternative]
    return next(iter(row.values()), None)


class SQLEngineClient:
    """Executes SQL against the engine through a bounded connection pool.

    Blocking driver calls run in worker threads so that a slow query or a
    retry backoff never stalls the event loop serving other requests.

    The table access memo lives as long as the client; call
    ``refresh_access_cache()`` to drop it.
    """

    def __init__(
        self,
        settings: Settings,
        engine: Engine | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._engine = engine
        self._engine_lock = threading.Lock()
        self._sleep = sleep
        self._access_cache: dict[str, bool] = {}
        self._access_lock = threading.Lock()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def engine(self) -> Engine:
        """The pooled engine, created on first use."""
        with self._engine_lock:
            if self._engine is None:
                self._engine = create_pooled_engine(self._settings)
            return self._engine

    def dispose(self) -> None:
        """Close every pooled connection."""
        with self._engine_lock:
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None

    # =========================================================================
    # Execution
    # =========================================================================

    def _execute_once(
        self, sql: str, params: Sequence[Any] | None, max_rows: int | None
    ) -> list[dict[str, Any]]:
        """Run one attempt on a fresh pooled connection."""
        with self.engine.connect() as conn:
            if params:
                result = conn.exec_driver_sql(sql, tuple(params))
            else:
                result = conn.exec_driver_sql(sql)
            if not result.returns_rows:
                return []
            columns = list(result.keys())
            rows = result.fetchmany(max_rows) if max_rows else result.fetchall()
            return [dict(zip(columns, row)) for row in rows]

    async def execute(
        self,
        sql: str,
        params: Sequence[Any] | None = None,
        *,
        capped: bool = True,
    ) -> list[dict[str, Any]]:
        """Execute SQL with positional parameters and return rows as dicts.

        Transient failures are retried until ``presto_max_retries`` attempts
        have been made, waiting ``presto_retry_backoff_ms`` between attempts.

        Args:
            sql: Statement to execute
            params: Positional parameters bound by the driver
            capped: Materialize at most ``presto_max_rows`` rows

        Raises:
            BackendError: On a non-transient failure or when attempts run out
        """
        max_rows = self._settings.presto_max_rows if capped else None
        max_attempts = max(1, self._settings.presto_max_retries)
        start_time = time.time()

        with tracer.start_as_current_span("sql.execute") as span:
            span.set_attribute("sql.statement", sql[:500])
            span.set_attribute("sql.capped", capped)

            for attempt in range(1, max_attempts + 1):
                try:
                    rows = await asyncio.to_thread(self._execute_once, sql, params, max_rows)
                except Exception as e:
                    if attempt < max_attempts and is_transient_error(e):
                        logger.warning(
                            "Transient failure (attempt %d/%d), retrying in %dms: %s",
                            attempt,
                            max_attempts,
                            self._settings.presto_retry_backoff_ms,
                            describe_error(e),
                        )
                        await self._sleep(self._settings.retry_backoff_seconds)
                        continue

                    span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                    span.set_attribute("error.type", type(e).__name__)
                    span.set_attribute("attempts", attempt)
                    logger.error(f"Query failed after {attempt} attempt(s): {sql[:200]!r}: {e}")
                    raise BackendError(f"Query failed: {describe_error(e)}") from e

                elapsed_ms = (time.time() - start_time) * 1000
                span.set_attribute("rows.returned", len(rows))
                span.set_attribute("attempts", attempt)
                logger.info(f"Query returned {len(rows)} rows in {elapsed_ms:.0f}ms")
                return rows

        raise AssertionError("unreachable")  # pragma: no cover

    async def test_connection(self) -> bool:
        """Best-effort connectivity probe. Never raises."""
        try:
            await asyncio.to_thread(self._execute_once, "SELECT 1", None, 1)
            return True
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    # =========================================================================
    # Discovery
    # =========================================================================

    async def list_schemas(self) -> list[str]:
        """List schemas in the configured catalog, without system schemas."""
        rows = await self.execute("SHOW SCHEMAS", capped=False)
        schemas = [_column_value(row, "Schema") for row in rows]
        return [s for s in schemas if s and s.lower() not in SYSTEM_SCHEMAS]

    async def list_tables(self, schema: str) -> list[str]:
        """List tables in a schema."""
        rows = await self.execute(f"SHOW TABLES FROM {quote_identifier(schema)}", capped=False)
        return [t for t in (_column_value(row, "Table") for row in rows) if t]

    async def describe_columns(self, schema: str, table: str) -> list[dict[str, Any]]:
        """Column rows as returned by DESCRIBE (Column, Type, Extra, Comment)."""
        return await self.execute(f"DESCRIBE {qualified_name(schema, table)}", capped=False)

    async def sample_rows(self, schema: str, table: str, limit: int = 10) -> list[dict[str, Any]]:
        """Get up to ``limit`` rows from a table (never more than the row cap)."""
        limit = max(1, min(limit, self._settings.presto_max_rows))
        return await self.execute(f"SELECT * FROM {qualified_name(schema, table)} LIMIT {limit}")

    async def search_tables(self, keyword: str) -> list[str]:
        """Find ``schema.table`` names whose table part contains the keyword."""
        needle = keyword.lower()
        matches = []
        for schema in await self.list_schemas():
            try:
                tables = await self.list_tables(schema)
            except PolentaError as e:
                logger.warning(f"Could not access schema {schema}: {e.message}")
                continue
            matches.extend(f"{schema}.{t}" for t in tables if needle in t.lower())
        return matches

    # =========================================================================
    # Access probing
    # =========================================================================

    async def can_access_table(self, schema: str, table: str) -> bool:
        """Probe whether the configured user can query a table (memoized)."""
        key = f"{schema}.{table}"
        with self._access_lock:
            cached = self._access_cache.get(key)
        if cached is not None:
            return cached

        try:
            await self.execute(f"SELECT 1 FROM {qualified_name(schema, table)} LIMIT 1")
            allowed = True
        except PolentaError as e:
            logger.debug(f"No access to table {key}: {e.message}")
            allowed = False

        with self._access_lock:
            self._access_cache[key] = allowed
        return allowed

    async def accessible_tables(self) -> list[str]:
        """List ``schema.table`` names the configured user can query."""
        accessible = []
        for schema in await self.list_schemas():
            try:
                tables = await self.list_tables(schema)
            except PolentaError as e:
                logger.warning(f"Could not access schema {schema}: {e.message}")
                continue
            for table in tables:
                if await self.can_access_table(schema, table):
                    accessible.append(f"{schema}.{table}")
        return accessible

    def refresh_access_cache(self) -> None:
        """Forget every memoized access probe."""
        with self._access_lock:
            dropped = len(self._access_cache)
            self._access_cache.clear()
        logger.info("Cleared %d memoized table access probes", dropped)
