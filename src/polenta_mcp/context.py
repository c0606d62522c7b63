"""Server-owned state passed to every handler."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import Engine

from polenta_mcp.config import Settings, get_settings
from polenta_mcp.db.client import SQLEngineClient
from polenta_mcp.intelligence.engine import QueryIntelligenceEngine
from polenta_mcp.metadata import MetadataCache, MetadataRefreshLoop
from polenta_mcp.sessions import SessionManager
from polenta_mcp.tools.metadata import MetadataTools
from polenta_mcp.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class ServerContext:
    settings: Settings
    client: SQLEngineClient
    cache: MetadataCache
    engine: QueryIntelligenceEngine
    metadata_tools: MetadataTools
    registry: ToolRegistry = field(default_factory=ToolRegistry)
    sessions: SessionManager = field(default_factory=SessionManager)
    refresh_loop: MetadataRefreshLoop | None = None

    async def startup(self) -> None:
        """Load the metadata snapshot and start the refresh loop, if configured."""
        if self.settings.load_metadata_on_startup:
            await self.cache.load()
        if self.refresh_loop is not None:
            await self.refresh_loop.start()

    async def shutdown(self) -> None:
        if self.refresh_loop is not None:
            await self.refresh_loop.stop()
        self.client.dispose()
        logger.info("Server context shut down")

    async def refresh(self) -> None:
        """Drop the access memo and reload the metadata snapshot."""
        self.client.refresh_access_cache()
        await self.cache.refresh()


def build_context(settings: Settings | None = None, sql_engine: Engine | None = None) -> ServerContext:
    """Wire up the client, cache, engine and registry.

    Args:
        settings: Settings to use (defaults to the process-wide settings)
        sql_engine: Pre-built SQLAlchemy engine, mainly for tests
    """
    settings = settings or get_settings()
    client = SQLEngineClient(settings, engine=sql_engine)
    cache = MetadataCache(client)
    refresh_loop = (
        MetadataRefreshLoop(cache, settings.metadata_refresh_seconds)
        if settings.metadata_refresh_seconds > 0
        else None
    )
    return ServerContext(
        settings=settings,
        client=client,
        cache=cache,
        engine=QueryIntelligenceEngine(client, cache),
        metadata_tools=MetadataTools(cache, client),
        refresh_loop=refresh_loop,
    )
