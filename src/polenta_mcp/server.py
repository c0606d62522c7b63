"""FastAPI JSON-RPC 2.0 binding for the dispatcher.

- ``POST /mcp`` (configurable) handles protocol requests
- ``GET /health`` reports database connectivity and cache state
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from polenta_mcp import __version__
from polenta_mcp.config import Settings, get_settings
from polenta_mcp.context import ServerContext, build_context
from polenta_mcp.dispatcher import McpDispatcher
from polenta_mcp.errors import JSONRPC_CODES, JSONRPC_INVALID_REQUEST
from polenta_mcp.models import ErrorEnvelope
from polenta_mcp.sessions import client_ip, derive_session_id

logger = logging.getLogger(__name__)

JSONRPC_PARSE_ERROR = -32700
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONRPCRequest(BaseModel):
    """JSON-RPC 2.0 request."""

    jsonrpc: str | None = None
    method: str | None = None
    params: Any | None = None
    id: str | int | None = None


class JSONRPCError(BaseModel):
    """JSON-RPC 2.0 error."""

    code: int
    message: str
    data: Any | None = None


class JSONRPCResponse(BaseModel):
    """JSON-RPC 2.0 response."""

    jsonrpc: str = "2.0"
    result: Any | None = None
    error: JSONRPCError | None = None
    id: str | int | None = None


def _error_response(
    code: int, message: str, request_id: str | int | None = None, status_code: int = 200
) -> JSONResponse:
    return JSONResponse(
        content=JSONRPCResponse(
            error=JSONRPCError(code=code, message=message), id=request_id
        ).model_dump(exclude_none=True),
        status_code=status_code,
    )


def session_id_for(request: Request) -> str:
    """Derive the session id from the caller's address and user agent."""
    ip = client_ip(
        request.headers.get("x-forwarded-for"),
        request.headers.get("x-real-ip"),
        request.client.host if request.client else None,
    )
    return derive_session_id(ip, request.headers.get("user-agent"))


def create_app(context: ServerContext | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        context: Pre-built server context. When omitted one is built from
            settings at startup.
    """
    settings = context.settings if context is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting %s server", settings.mcp_server_name)
        ctx = context or build_context(settings)
        app.state.context = ctx
        app.state.dispatcher = McpDispatcher(ctx)
        await ctx.startup()

        yield

        logger.info("Shutting down %s server", settings.mcp_server_name)
        await ctx.shutdown()

    app = FastAPI(
        title=settings.mcp_server_name,
        description=settings.mcp_server_description,
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check(request: Request) -> dict[str, Any]:
        """Health check endpoint."""
        ctx: ServerContext = request.app.state.context
        database_ok = await ctx.client.test_connection()
        return {
            "status": "healthy" if database_ok else "degraded",
            "service": settings.mcp_server_name,
            "version": settings.mcp_server_version,
            "database": database_ok,
            "metadata": ctx.cache.status(),
            "sessions": len(ctx.sessions),
        }

    @app.post(settings.mcp_path)
    async def mcp_handler(request: Request) -> JSONResponse:
        """Handle JSON-RPC requests by routing them through the dispatcher."""
        try:
            body = await request.json()
        except ValueError:
            return _error_response(JSONRPC_PARSE_ERROR, "Parse error", status_code=400)

        try:
            rpc_request = JSONRPCRequest.model_validate(body)
        except ValidationError:
            return _error_response(JSONRPC_INVALID_REQUEST, "Invalid Request", status_code=400)

        if rpc_request.jsonrpc != "2.0" or not rpc_request.method:
            return _error_response(
                JSONRPC_INVALID_REQUEST, "Invalid Request", rpc_request.id, status_code=400
            )

        dispatcher: McpDispatcher = request.app.state.dispatcher
        envelope = await dispatcher.dispatch(
            rpc_request.method, rpc_request.params, session_id_for(request)
        )

        if isinstance(envelope, ErrorEnvelope):
            response = JSONRPCResponse(
                error=JSONRPCError(
                    code=JSONRPC_CODES[envelope.category],
                    message=envelope.message,
                    data=envelope.to_dict(),
                ),
                id=rpc_request.id,
            )
        else:
            response = JSONRPCResponse(result=envelope.to_dict(), id=rpc_request.id)
        return JSONResponse(content=response.model_dump(exclude_none=True))

    return app


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def start_server(settings: Settings | None = None, host: str | None = None, port: int | None = None) -> None:
    """Start the HTTP server.

    Args:
        settings: Settings to use (defaults to the process-wide settings)
        host: Host to bind to (default: MCP_HOST)
        port: Port to listen on (default: MCP_PORT)
    """
    import uvicorn

    settings = settings or get_settings()
    configure_logging(settings.log_level)

    host = host or settings.mcp_host
    port = port or settings.mcp_port
    logger.info(f"Starting {settings.mcp_server_name} on {host}:{port}{settings.mcp_path}")
    uvicorn.run(
        "polenta_mcp.server:create_app",
        host=host,
        port=port,
        factory=True,
        reload=False,
        workers=1,
        log_level=settings.log_level.lower(),
    )
