"""polenta-mcp - MCP server for natural language and SQL access to a Presto/Trino data lake."""

__version__ = "0.3.0"
