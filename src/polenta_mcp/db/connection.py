"""Database engine and connection pool management."""

import logging
import urllib.parse
from typing import Any

import urllib3
from sqlalchemy import Engine, create_engine
from trino.auth import BasicAuthentication

from polenta_mcp.config import Settings
from polenta_mcp.errors import BackendError

logger = logging.getLogger(__name__)


def detect_dialect_from_url(database_url: str) -> str:
    """Detect SQL dialect from database URL.

    Args:
        database_url: SQLAlchemy-compatible database URL

    Returns:
        Dialect name: 'trino', 'presto', 'postgresql', 'sqlite', etc.
    """
    if not database_url:
        return "unknown"

    parsed = urllib.parse.urlparse(database_url)
    scheme = parsed.scheme.lower()

    # Handle driver specifications (e.g., postgresql+psycopg2)
    dialect = scheme.split("+")[0]

    dialect_map = {
        "postgres": "postgresql",
        "trino": "trino",
        "presto": "presto",
        "sqlite": "sqlite",
        "sqlite3": "sqlite",
    }

    return dialect_map.get(dialect, dialect)


def build_connect_args(database_url: str, settings: Settings) -> dict[str, Any]:
    """Build driver-specific connect arguments.

    For Trino this wires credentials, TLS and the per-attempt query timeout.
    Other dialects get no extra arguments.
    """
    if detect_dialect_from_url(database_url) != "trino":
        return {}

    parsed = urllib.parse.urlparse(database_url)
    username = urllib.parse.unquote(parsed.username) if parsed.username else settings.presto_user
    password = urllib.parse.unquote(parsed.password) if parsed.password else settings.presto_password

    connect_args: dict[str, Any] = {}
    if username and not parsed.username:
        connect_args["user"] = username

    if username and password:
        connect_args["auth"] = BasicAuthentication(username, password)
        connect_args["http_scheme"] = "https"
        connect_args["verify"] = settings.presto_verify_ssl
        if not settings.presto_verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    if settings.presto_query_timeout_ms > 0:
        seconds = max(1, int(settings.query_timeout_seconds))
        connect_args["request_timeout"] = settings.query_timeout_seconds
        connect_args["session_properties"] = {"query_max_run_time": f"{seconds}s"}

    return connect_args


def create_pooled_engine(settings: Settings) -> Engine:
    """Create a SQLAlchemy engine with a bounded connection pool.

    The pool never grows beyond ``presto_max_pool_size`` checkouts and waits at
    most ``presto_connection_timeout_ms`` for a free connection.

    Raises:
        BackendError: If no URL is configured or the engine cannot be created
    """
    if not settings.presto_url:
        raise BackendError("No database URL configured")

    url = settings.presto_url

    engine_kwargs: dict[str, Any] = {
        "pool_size": settings.presto_max_pool_size,
        "max_overflow": 0,
        "pool_timeout": settings.connection_timeout_seconds,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    connect_args = build_connect_args(url, settings)
    if connect_args:
        engine_kwargs["connect_args"] = connect_args

    try:
        engine = create_engine(url, **engine_kwargs)
    except Exception as e:
        raise BackendError(f"Failed to create database engine: {e}") from e

    logger.info(
        "Created %s engine (pool_size=%d, pool_timeout=%.1fs)",
        detect_dialect_from_url(url),
        settings.presto_max_pool_size,
        settings.connection_timeout_seconds,
    )
    return engine
