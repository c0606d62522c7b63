"""Command line interface for polenta-mcp."""

import asyncio
import sys

import click
from rich.console import Console
from rich.table import Table

from polenta_mcp import __version__
from polenta_mcp.config import get_settings
from polenta_mcp.db.client import SQLEngineClient
from polenta_mcp.db.connection import detect_dialect_from_url
from polenta_mcp.server import configure_logging, start_server
from polenta_mcp.tools.registry import ToolRegistry

console = Console()


@click.group()
@click.version_option(version=__version__)
def main():
    """polenta-mcp - natural language and SQL access to Presto/Trino over MCP."""
    pass


@main.command()
@click.option("--host", default=None, help="Host to bind to (default: MCP_HOST)")
@click.option("--port", default=None, type=int, help="Port to listen on (default: MCP_PORT)")
def serve(host: str | None, port: int | None):
    """Start the JSON-RPC server."""
    start_server(host=host, port=port)


@main.command()
def check():
    """Test connectivity to the configured engine."""
    settings = get_settings()
    configure_logging("WARNING")

    if not settings.presto_url:
        console.print("[red]PRESTO_URL is not set.[/red]")
        sys.exit(1)

    dialect = detect_dialect_from_url(settings.presto_url)
    console.print(f"Checking [cyan]{dialect}[/cyan] connection...")

    client = SQLEngineClient(settings)
    try:
        ok = asyncio.run(client.test_connection())
    finally:
        client.dispose()

    if not ok:
        console.print("[red]✗ Connection failed. See the log output above.[/red]")
        sys.exit(1)

    console.print("[green]✓ Connection OK[/green]")


@main.command()
def tools():
    """List the tools exposed through tools/call."""
    table = Table(title="Tools", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Arguments")
    table.add_column("Result type")
    table.add_column("Description")

    for tool in ToolRegistry().list_tools():
        schema = tool.input_schema
        arguments = ", ".join(
            f"{name}*" if name in schema.required else name for name in schema.properties
        )
        table.add_row(
            tool.name,
            arguments or "[dim]-[/dim]",
            tool.metadata.result_type if tool.metadata else "",
            tool.description,
        )

    console.print(table)
    console.print("[dim]* required[/dim]")


if __name__ == "__main__":
    main()
