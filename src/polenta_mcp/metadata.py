"""In-memory snapshot of schema -> table -> columns.

The snapshot is loaded once at startup and replaced wholesale by
``MetadataCache.refresh()``. Reads never touch the backend.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from polenta_mcp.db.client import SQLEngineClient
from polenta_mcp.errors import PolentaError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetadataSnapshot:
    """Immutable schema -> table -> column names mapping."""

    schemas: Mapping[str, Mapping[str, tuple[str, ...]]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    loaded_at: float | None = None

    @property
    def table_count(self) -> int:
        return sum(len(tables) for tables in self.schemas.values())


class MetadataCache:
    """Shields the backend from repeated discovery calls."""

    def __init__(self, client: SQLEngineClient):
        self._client = client
        self._snapshot = MetadataSnapshot()
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> MetadataSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def is_loaded(self) -> bool:
        return self.snapshot.loaded_at is not None

    @property
    def loaded_at(self) -> float | None:
        return self.snapshot.loaded_at

    async def load(self) -> bool:
        """Walk schemas, tables and columns and swap in a new snapshot.

        Per-schema and per-table failures are logged and tolerated. If the
        schema list itself cannot be read, the previous snapshot stays.

        Returns:
            True if a new snapshot was installed
        """
        start_time = time.time()
        try:
            schema_names = await self._client.list_schemas()
        except PolentaError as e:
            logger.error(f"Metadata load failed, keeping previous snapshot: {e.message}")
            return False

        schemas: dict[str, Mapping[str, tuple[str, ...]]] = {}
        for schema in schema_names:
            tables: dict[str, tuple[str, ...]] = {}
            try:
                table_names = await self._client.list_tables(schema)
            except PolentaError as e:
                logger.warning(f"Could not list tables in schema {schema}: {e.message}")
                table_names = []

            for table in table_names:
                try:
                    rows = await self._client.describe_columns(schema, table)
                    tables[table] = tuple(_column_name(row) for row in rows)
                except PolentaError as e:
                    logger.warning(f"Could not describe {schema}.{table}: {e.message}")
                    tables[table] = ()

            schemas[schema] = MappingProxyType(tables)

        snapshot = MetadataSnapshot(schemas=MappingProxyType(schemas), loaded_at=time.time())
        with self._lock:
            self._snapshot = snapshot

        logger.info(
            "Loaded metadata: %d schemas, %d tables in %.0fms",
            len(schemas),
            snapshot.table_count,
            (time.time() - start_time) * 1000,
        )
        return True

    async def refresh(self) -> bool:
        """Reload the snapshot from the backend."""
        logger.info("Refreshing metadata cache (snapshot loaded at %s)", self.loaded_at)
        return await self.load()

    # =========================================================================
    # Reads
    # =========================================================================

    def schemas(self) -> list[str]:
        return list(self.snapshot.schemas)

    def tables(self, schema: str) -> list[str]:
        return list(self.snapshot.schemas.get(schema, {}))

    def columns(self, schema: str, table: str) -> list[str]:
        return list(self.snapshot.schemas.get(schema, {}).get(table, ()))

    def find_tables(self, name: str) -> list[tuple[str, str]]:
        """Locate a table by name (case-insensitive) across every schema.

        Returns:
            List of (schema, table) pairs, in snapshot order
        """
        needle = name.lower()
        return [
            (schema, table)
            for schema, tables in self.snapshot.schemas.items()
            for table in tables
            if table.lower() == needle
        ]

    def status(self) -> dict:
        snapshot = self.snapshot
        return {
            "loaded": snapshot.loaded_at is not None,
            "loaded_at": snapshot.loaded_at,
            "schemas": len(snapshot.schemas),
            "tables": snapshot.table_count,
        }


def _column_name(row: Mapping) -> str:
    for key in ("Column", "column_name"):
        if key in row:
            return str(row[key])
    return str(next(iter(row.values())))


class MetadataRefreshLoop:
    """Periodic background refresh of a metadata cache."""

    def __init__(self, cache: MetadataCache, interval_seconds: int):
        self._cache = cache
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        """Start the periodic refresh task. No-op when the interval is 0."""
        if self._task is not None or self._interval_seconds <= 0:
            return

        async def refresh_loop():
            while True:
                try:
                    await asyncio.sleep(self._interval_seconds)
                    await self._cache.refresh()
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.exception("Metadata refresh loop error: %s", e)

        self._task = asyncio.create_task(refresh_loop())
        logger.info("Started metadata refresh loop (interval: %ds)", self._interval_seconds)

    async def stop(self) -> None:
        """Stop the periodic refresh task."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Stopped metadata refresh loop")
