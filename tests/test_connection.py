"""Tests for engine creation and driver connect arguments."""

from unittest.mock import MagicMock, patch

import pytest
from trino.auth import BasicAuthentication

from polenta_mcp.config import Settings
from polenta_mcp.db.connection import (
    build_connect_args,
    create_pooled_engine,
    detect_dialect_from_url,
)
from polenta_mcp.errors import BackendError


class TestDetectDialect:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("trino://user@host:8080/hive", "trino"),
            ("presto://host:8080/hive", "presto"),
            ("postgres://localhost/db", "postgresql"),
            ("postgresql+psycopg2://localhost/db", "postgresql"),
            ("", "unknown"),
        ],
    )
    def test_dialects(self, url, expected):
        assert detect_dialect_from_url(url) == expected


class TestBuildConnectArgs:
    def test_non_trino_gets_nothing(self):
        settings = Settings(_env_file=None, presto_password="secret", presto_user="bob")
        assert build_connect_args("postgresql://localhost/db", settings) == {}

    def test_user_from_settings(self):
        settings = Settings(_env_file=None, presto_user="analyst")
        args = build_connect_args("trino://localhost:8080/hive", settings)
        assert args["user"] == "analyst"
        assert "auth" not in args

    def test_password_enables_basic_auth_over_https(self):
        settings = Settings(_env_file=None, presto_password="secret", presto_verify_ssl=False)
        args = build_connect_args("trino://analyst@localhost:8443/hive", settings)
        assert isinstance(args["auth"], BasicAuthentication)
        assert args["http_scheme"] == "https"
        assert args["verify"] is False
        assert "user" not in args

    def test_query_timeout(self):
        settings = Settings(_env_file=None, presto_query_timeout_ms=30000)
        args = build_connect_args("trino://analyst@localhost:8080/hive", settings)
        assert args["request_timeout"] == 30
        assert args["session_properties"] == {"query_max_run_time": "30s"}


class TestCreatePooledEngine:
    def test_requires_url(self):
        with pytest.raises(BackendError, match="No database URL"):
            create_pooled_engine(Settings(_env_file=None, presto_url=""))

    def test_bounded_pool(self):
        settings = Settings(
            _env_file=None,
            presto_url="trino://analyst@localhost:8080/hive",
            presto_max_pool_size=4,
            presto_connection_timeout_ms=5000,
        )
        with patch("polenta_mcp.db.connection.create_engine", return_value=MagicMock()) as create:
            create_pooled_engine(settings)

        kwargs = create.call_args.kwargs
        assert create.call_args.args[0] == "trino://analyst@localhost:8080/hive"
        assert kwargs["pool_size"] == 4
        assert kwargs["max_overflow"] == 0
        assert kwargs["pool_timeout"] == 5
        assert kwargs["pool_pre_ping"] is True

    def test_quoted_url_from_env_file(self):
        settings = Settings(_env_file=None, presto_url=' "trino://analyst@localhost:8080/hive"\n')
        with patch("polenta_mcp.db.connection.create_engine", return_value=MagicMock()) as create:
            create_pooled_engine(settings)

        assert create.call_args.args[0] == "trino://analyst@localhost:8080/hive"

    def test_creation_failure_is_backend_error(self):
        settings = Settings(_env_file=None, presto_url="trino://analyst@localhost:8080/hive")
        with patch(
            "polenta_mcp.db.connection.create_engine", side_effect=ValueError("bad url")
        ):
            with pytest.raises(BackendError, match="bad url"):
                create_pooled_engine(settings)
