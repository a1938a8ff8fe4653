# FastAPI transport for the tool protocol, plus health, readiness and metrics

import time
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from starlette.responses import Response

from src.shared import init_config
from src.shared.observability import (
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
    setup_tracing,
)
from src.shared.observability.metrics import (
    PrometheusMiddleware,
    get_metrics,
    setup_metrics,
)

from .dispatcher import Dispatcher
from .models import (
    HealthResponse,
    MCPTool,
    MCPToolsListResponse,
    ReadinessResponse,
    ToolCallRequest,
)
from .session_store import SessionReaper, SessionStore
from .tools import Deps, build_registry

# Initialize config and logging
config, settings = init_config()
setup_logging(config.app.log_level)
logger = get_logger(__name__)


def create_app(deps: Optional[Deps] = None) -> FastAPI:
    """
    Build the HTTP app.

    Args:
        deps: Pre-built backend clients. When omitted, clients are created from
            config at startup and closed at shutdown.
    """
    app = FastAPI(
        title=config.app.name,
        version=config.app.version,
        description="GeoSPARQL tool orchestration server",
    )
    app.state.deps = deps
    app.state.owns_deps = deps is None
    app.state.registry = build_registry()
    app.state.store = SessionStore(idle_ttl_seconds=config.sessions.idle_ttl_seconds)
    app.state.dispatcher = None
    app.state.reaper = None

    app.add_middleware(PrometheusMiddleware)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        """Add correlation ID to request context"""
        corr_id = request.headers.get("X-Correlation-ID")
        if not corr_id:
            corr_id = get_correlation_id()
        else:
            set_correlation_id(corr_id)

        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
            )
            raise

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=round((time.time() - start_time) * 1000, 2),
        )
        response.headers["X-Correlation-ID"] = corr_id
        return response

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting MCP server", version=config.app.version)
        if app.state.deps is None:
            app.state.deps = Deps.from_config(config)
        app.state.dispatcher = Dispatcher(
            app.state.registry, app.state.store, app.state.deps
        )
        app.state.reaper = SessionReaper(
            app.state.store, config.sessions.purge_interval_seconds
        )
        app.state.reaper.start()
        logger.info("MCP server started successfully", tools=app.state.registry.names)

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down MCP server")
        try:
            if app.state.reaper is not None:
                await app.state.reaper.stop()
                app.state.reaper = None
            if app.state.owns_deps and app.state.deps is not None:
                await app.state.deps.close()
                app.state.deps = None
            logger.info("MCP server shut down successfully")
        except Exception as e:
            logger.error("Error during shutdown", error=str(e))

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint"""
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            version=config.app.version,
        )

    @app.get("/ready", response_model=ReadinessResponse)
    async def readiness():
        """Readiness: the dispatcher is wired and backends are configured"""
        deps = app.state.deps
        backends = {}
        if deps is not None:
            backends = {
                client.service: client.base_url
                for client in (deps.translator, deps.graph_query, deps.formatter)
            }
        return ReadinessResponse(
            ready=app.state.dispatcher is not None,
            backends=backends,
            sessions=len(app.state.store),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint"""
        return Response(content=get_metrics(), media_type="text/plain; version=0.0.4")

    @app.get("/mcp/tools/list", response_model=MCPToolsListResponse)
    async def mcp_tools_list():
        """List available tools with their input schemas"""
        tools = [MCPTool(**entry) for entry in app.state.registry.describe()]
        logger.info("MCP tools list request", tool_count=len(tools))
        return MCPToolsListResponse(tools=tools)

    @app.post("/mcp/tools/call")
    async def mcp_tools_call(request: ToolCallRequest):
        """Execute one tool call; tool errors are returned with status 200"""
        logger.info(
            "MCP tool call request", tool=request.tool, thread_id=request.thread_id
        )
        response = await app.state.dispatcher.dispatch(
            request.tool, request.input, thread_id=request.thread_id
        )
        return response.to_dict()

    @app.get("/mcp/sessions/{thread_id}")
    async def mcp_session(thread_id: str):
        """Read-only view of one session; does not create or touch it"""
        session = app.state.store.snapshot(thread_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown thread '{thread_id}'")
        return session.to_dict()

    return app


app = create_app()

# Setup OpenTelemetry tracing
setup_tracing(app, settings, version=config.app.version)

# Setup Prometheus metrics
setup_metrics(config, settings)


if __name__ == "__main__":
    uvicorn.run(
        "src.mcp_server.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=config.app.log_level.lower(),
    )
