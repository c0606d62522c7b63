"""Database connectivity, execution and discovery."""

from polenta_mcp.db.client import SQLEngineClient, is_transient_error, quote_identifier
from polenta_mcp.db.connection import create_pooled_engine

__all__ = [
    "SQLEngineClient",
    "create_pooled_engine",
    "is_transient_error",
    "quote_identifier",
]
