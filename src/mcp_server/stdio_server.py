"""
STDIO MCP server for desktop chat clients.
Runs the shared low-level MCP server over STDIO transport.
"""

from __future__ import annotations

import logging
import os
import sys

# --- STDIO-SAFE BOOTSTRAP: stdout carries JSON-RPC only ---
os.environ.setdefault("PYTHONUNBUFFERED", "1")
os.environ["GEOSPARQL_STDIO_MODE"] = "1"

root = logging.getLogger()
for h in list(root.handlers):
    root.removeHandler(h)

stderr_handler = logging.StreamHandler(sys.stderr)
stderr_handler.setFormatter(
    logging.Formatter(fmt="%(asctime)s %(levelname)s %(name)s: %(message)s")
)
root.addHandler(stderr_handler)
root.setLevel(logging.INFO)

for noisy in ("httpx", "httpcore", "opentelemetry", "asyncio"):
    logging.getLogger(noisy).setLevel(logging.WARNING)
# --- END STDIO-SAFE BOOTSTRAP ---

import anyio  # noqa: E402
import structlog  # noqa: E402
from mcp.server.lowlevel.server import NotificationOptions  # noqa: E402
from mcp.server.stdio import stdio_server  # noqa: E402

from src.mcp_server.mcp_app import build_mcp_server  # noqa: E402
from src.shared.config import get_config, get_settings  # noqa: E402
from src.shared.observability import get_logger, init_tracing  # noqa: E402


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(),  # Human-readable for stderr
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = get_logger(__name__)


async def run_stdio_server() -> None:
    server = build_mcp_server()
    init_options = server.create_initialization_options(
        notification_options=NotificationOptions()
    )
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, init_options)


def main() -> None:
    _configure_structlog()
    init_tracing(get_settings(), version=get_config().app.version)
    logger.info("Starting geosparql MCP server with STDIO transport")
    anyio.run(run_stdio_server)


if __name__ == "__main__":
    main()
