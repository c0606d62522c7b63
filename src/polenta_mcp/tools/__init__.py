"""Tool catalog, typed arguments and metadata navigation tools."""

from polenta_mcp.tools.metadata import MetadataTools
from polenta_mcp.tools.registry import TOOLS, ToolRegistry

__all__ = ["TOOLS", "MetadataTools", "ToolRegistry"]
