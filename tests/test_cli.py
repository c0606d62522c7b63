"""Tests for the command line interface."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from polenta_mcp import __version__
from polenta_mcp.cli import main


@pytest.fixture()
def runner():
    return CliRunner()


class TestMainGroup:
    def test_help(self, runner):
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for command in ("serve", "check", "tools"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_serve_help(self, runner):
        result = runner.invoke(main, ["serve", "--help"])

        assert result.exit_code == 0
        assert "--port" in result.output

    def test_serve_passes_options(self, runner):
        with patch("polenta_mcp.cli.start_server") as start:
            result = runner.invoke(main, ["serve", "--host", "127.0.0.1", "--port", "9000"])

        assert result.exit_code == 0
        start.assert_called_once_with(host="127.0.0.1", port=9000)


class TestToolsCommand:
    def test_lists_tools(self, runner):
        result = runner.invoke(main, ["tools"])

        assert result.exit_code == 0
        assert "required" in result.output


class TestCheckCommand:
    def test_requires_url(self, runner, settings):
        unset = settings.model_copy(update={"presto_url": ""})

        with patch("polenta_mcp.cli.get_settings", return_value=unset):
            result = runner.invoke(main, ["check"])

        assert result.exit_code == 1
        assert "PRESTO_URL is not set" in result.output

    def test_connection_ok(self, runner, settings):
        client = MagicMock()
        client.test_connection = AsyncMock(return_value=True)

        with (
            patch("polenta_mcp.cli.get_settings", return_value=settings),
            patch("polenta_mcp.cli.SQLEngineClient", return_value=client),
        ):
            result = runner.invoke(main, ["check"])

        assert result.exit_code == 0
        assert "Connection OK" in result.output
        client.dispose.assert_called_once()

    def test_connection_failed(self, runner, settings):
        client = MagicMock()
        client.test_connection = AsyncMock(return_value=False)

        with (
            patch("polenta_mcp.cli.get_settings", return_value=settings),
            patch("polenta_mcp.cli.SQLEngineClient", return_value=client),
        ):
            result = runner.invoke(main, ["check"])

        assert result.exit_code == 1
        assert "Connection failed" in result.output
        client.dispose.assert_called_once()
