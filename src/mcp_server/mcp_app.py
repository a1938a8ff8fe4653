"""
MCP server factory: exposes the tool registry through the low-level MCP
``Server`` so STDIO clients reach the same dispatcher as the HTTP transport.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional
from weakref import WeakKeyDictionary

import mcp.types as types
from mcp.server.lowlevel.server import Server

from src.shared.config import get_config
from src.shared.observability import get_logger

from .dispatcher import CallResponse, Dispatcher, new_thread_id
from .prompts import SYSTEM_PROMPT
from .registry import ToolRegistry
from .session_store import SessionReaper, SessionStore
from .tools import Deps, build_registry

logger = get_logger(__name__)

_THREAD_IDS: "WeakKeyDictionary[Any, str]" = WeakKeyDictionary()

THREAD_ID_PROPERTY = {
    "type": "string",
    "description": (
        "Conversation thread identifier. Reuse the value returned by the first "
        "call for every later call in the same conversation."
    ),
}


@asynccontextmanager
async def lifespan(server: Server) -> AsyncIterator[Dispatcher]:
    """Create backend clients and the session store once per server run."""
    config = get_config()
    deps = Deps.from_config(config)
    store = SessionStore(idle_ttl_seconds=config.sessions.idle_ttl_seconds)
    reaper = SessionReaper(store, config.sessions.purge_interval_seconds)
    logger.info("MCP lifespan: initializing dependencies")
    reaper.start()
    try:
        yield Dispatcher(build_registry(), store, deps)
    finally:
        await reaper.stop()
        await deps.close()
        logger.info("MCP lifespan: connections closed")


def _resolve_thread_id(request_context: Any | None, provided: Optional[str]) -> str:
    if provided:
        return provided
    if request_context is None:
        return new_thread_id()
    session = request_context.session
    existing = _THREAD_IDS.get(session)
    if not existing:
        existing = new_thread_id()
        _THREAD_IDS[session] = existing
    return existing


def _tool_schema(registry: ToolRegistry, name: str) -> dict:
    schema = registry.resolve(name).input_schema()
    schema.setdefault("properties", {})["threadId"] = THREAD_ID_PROPERTY
    return schema


def _tool_annotations(registry: ToolRegistry, name: str) -> types.ToolAnnotations:
    spec = registry.resolve(name)
    return types.ToolAnnotations(
        readOnlyHint=spec.read_only,
        idempotentHint=spec.idempotent,
        destructiveHint=False,
        openWorldHint=True,
    )


def _summary_for_tool(response: CallResponse) -> str:
    if response.error is not None:
        error = response.error
        service = f" ({error['service']})" if error.get("service") else ""
        return f"{response.tool} error{service}: {error.get('message', 'error')}"
    result = response.result or {}
    if "locations" in result:
        return f"{response.tool} returned {len(result['locations'])} locations."
    if "rows" in result:
        return f"{response.tool} returned {len(result['rows'])} rows."
    return f"{response.tool} completed."


def build_mcp_server() -> Server:
    registry = build_registry()
    server = Server("geosparql", instructions=SYSTEM_PROMPT, lifespan=lifespan)

    @server.list_tools()
    async def _list_tools():
        tools: list[types.Tool] = []
        for entry in registry.describe():
            tools.append(
                types.Tool(
                    name=entry["name"],
                    description=entry["description"],
                    inputSchema=_tool_schema(registry, entry["name"]),
                    annotations=_tool_annotations(registry, entry["name"]),
                )
            )
        return tools

    @server.call_tool(validate_input=False)
    async def _call_tool(name: str, arguments: dict | None):
        arguments = dict(arguments or {})
        provided = arguments.pop("threadId", None)
        request_context = server.request_context
        dispatcher: Dispatcher = request_context.lifespan_context
        thread_id = _resolve_thread_id(request_context, provided)

        response = await dispatcher.dispatch(name, arguments, thread_id=thread_id)
        payload = response.to_dict()
        summary = _summary_for_tool(response)
        return (
            [types.TextContent(type="text", text=summary + "\n" + json.dumps(payload))],
            payload,
        )

    return server
