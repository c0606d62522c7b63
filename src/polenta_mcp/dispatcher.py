"""Protocol method dispatch: session state, tool validation and routing."""

import logging
from collections.abc import Mapping
from typing import Any

from polenta_mcp.context import ServerContext
from polenta_mcp.errors import (
    InvalidParamsError,
    PolentaError,
    SessionStateError,
    UnknownOperationError,
)
from polenta_mcp.models import Envelope, SuccessEnvelope, error_envelope, success
from polenta_mcp.tools.arguments import ToolArguments

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

SERVER_CAPABILITIES = {
    "tools": {"listChanged": False},
    "resources": {"subscribe": False, "listChanged": False},
}


class McpDispatcher:
    """Routes ``initialize``, ``ping``, ``tools/list`` and ``tools/call``.

    ``dispatch()`` never raises. Failures come back as error envelopes whose
    category tells the transport which protocol error code to use.
    """

    def __init__(self, context: ServerContext):
        self._context = context
        self._methods = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
        }

    @property
    def context(self) -> ServerContext:
        return self._context

    async def dispatch(self, method: str, params: Any, session_id: str) -> Envelope:
        logger.info("Dispatching method %s for session %s", method, session_id)
        try:
            handler = self._methods.get(method)
            if handler is None:
                raise UnknownOperationError(f"Unknown method: {method}", details={"method": method})
            return await handler(params, session_id)
        except Exception as e:
            if isinstance(e, PolentaError):
                logger.warning(f"{method} failed ({e.category.value}): {e.message}")
            return error_envelope(e, logger)

    async def _initialize(self, params: Any, session_id: str) -> SuccessEnvelope:
        self._context.sessions.add(session_id)
        settings = self._context.settings
        logger.info("Session %s initialized", session_id)
        return success(
            "initialize",
            "Session initialized",
            protocolVersion=PROTOCOL_VERSION,
            capabilities=SERVER_CAPABILITIES,
            serverInfo={
                "name": settings.mcp_server_name,
                "version": settings.mcp_server_version,
                "description": settings.mcp_server_description,
            },
            sessionId=session_id,
        )

    async def _ping(self, params: Any, session_id: str) -> SuccessEnvelope:
        if not self._context.sessions.is_initialized(session_id):
            raise SessionStateError(
                "Session not initialized. Call initialize first.",
                details={"sessionId": session_id},
            )
        return success("pong", "pong", sessionId=session_id)

    async def _tools_list(self, params: Any, session_id: str) -> SuccessEnvelope:
        tools = [tool.to_dict() for tool in self._context.registry.list_tools()]
        return success("tool_list", f"{len(tools)} tools available", tools=tools)

    async def _tools_call(self, params: Any, session_id: str) -> Envelope:
        if params is None:
            raise InvalidParamsError("Missing 'params' parameter")
        if not isinstance(params, Mapping):
            raise InvalidParamsError("'params' must be an object")

        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidParamsError("Missing 'name' parameter (tool name)")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise InvalidParamsError(
                "Invalid params: arguments must be an object",
                details={"arguments": "Invalid type: expected object"},
            )

        args = self._context.registry.bind_arguments(name, dict(arguments))
        logger.info("Calling tool %s", name)
        return await self._call_tool(name, args)

    async def _call_tool(self, name: str, args: ToolArguments) -> Envelope:
        engine = self._context.engine
        metadata_tools = self._context.metadata_tools

        if name == "query_data":
            return await engine.process(args.query)
        if name == "list_tables":
            return await engine.show_tables()
        if name == "accessible_tables":
            return await engine.accessible_tables()
        if name == "describe_table":
            return await engine.describe_table(args.table_name)
        if name == "sample_data":
            return await engine.sample_data(args.table_name)
        if name == "search_tables":
            return await engine.search_tables(args.keyword)
        if name == "get_suggestions":
            return engine.suggestions()
        if name == "schemas":
            return metadata_tools.schemas()
        if name == "tables":
            return metadata_tools.tables(args.schema_name)
        if name == "columns":
            return metadata_tools.columns(args.schema_name, args.table)
        if name == "metadata":
            return await metadata_tools.metadata(args.schema_name, args.table)
        raise UnknownOperationError(f"Unknown tool: {name}", details={"tool": name})
