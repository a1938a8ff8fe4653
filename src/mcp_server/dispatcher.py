"""
Dispatcher: runs one protocol call through
Received -> Validated -> SessionLoaded -> Executing -> Responding -> Done.

Calls for the same thread id hold that thread's lock from session load until
the mutation is committed, so they run one at a time in arrival order. Calls
for different thread ids never share a lock.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from src.clients import BackendError
from src.shared.observability import bind_thread_context, get_logger, trace_mcp_tool

from .errors import SessionError, ToolError, error_payload
from .registry import ToolContext, ToolRegistry
from .session_store import SessionStore

logger = get_logger(__name__)


class CallStage(str, Enum):
    RECEIVED = "Received"
    VALIDATED = "Validated"
    SESSION_LOADED = "SessionLoaded"
    EXECUTING = "Executing"
    RESPONDING = "Responding"
    DONE = "Done"


@dataclass
class CallResponse:
    """Exactly one of ``result`` or ``error`` is set."""

    thread_id: str
    tool: str
    stage: CallStage
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"threadId": self.thread_id, "error": self.error}
        return {"threadId": self.thread_id, "result": self.result}


def new_thread_id() -> str:
    return f"thread-{uuid.uuid4()}"


class Dispatcher:
    def __init__(
        self,
        registry: ToolRegistry,
        store: SessionStore,
        deps: Any,
        id_factory: Callable[[], str] = new_thread_id,
    ) -> None:
        self.registry = registry
        self.store = store
        self.deps = deps
        self._id_factory = id_factory

    async def dispatch(
        self,
        tool: str,
        arguments: Optional[Dict[str, Any]] = None,
        thread_id: Optional[str] = None,
    ) -> CallResponse:
        thread_id = thread_id or self._id_factory()
        with bind_thread_context(thread_id, tool):
            return await self._run(tool, arguments, thread_id)

    async def _run(
        self, tool: str, arguments: Optional[Dict[str, Any]], thread_id: str
    ) -> CallResponse:
        stage = CallStage.RECEIVED
        started = time.perf_counter()

        with trace_mcp_tool(tool, arguments or {}) as traced:
            traced.span.set_attribute("mcp.thread_id", thread_id)
            try:
                spec = self.registry.resolve(tool)
                args = self.registry.validate(tool, arguments)
                stage = CallStage.VALIDATED

                async with self.store.lock(thread_id):
                    session = self.store.get(thread_id)
                    stage = CallStage.SESSION_LOADED

                    ctx = ToolContext(thread_id=thread_id, session=session, deps=self.deps)
                    stage = CallStage.EXECUTING
                    outcome = await spec.handler(ctx, args)

                    stage = CallStage.RESPONDING
                    if outcome.mutation is not None:
                        if not spec.mutates_session:
                            raise SessionError(
                                "UndeclaredMutation",
                                f"Tool '{tool}' is not declared to change session state",
                            )
                        self.store.apply(thread_id, outcome.mutation)

            except (ToolError, BackendError) as exc:
                payload = error_payload(exc)
                traced.fail(payload["kind"], payload["message"])
                logger.warning(
                    "tool_call_failed",
                    stage=stage.value,
                    error_kind=payload["kind"],
                    service=payload.get("service"),
                    reason=payload.get("reason"),
                    error=payload["message"],
                    latency_ms=round((time.perf_counter() - started) * 1000, 2),
                )
                return CallResponse(thread_id, tool, stage, error=payload)

            except Exception as exc:
                payload = error_payload(exc)
                traced.fail(payload["kind"], payload["message"])
                logger.error(
                    "tool_call_crashed",
                    stage=stage.value,
                    error=str(exc),
                    exc_info=True,
                )
                return CallResponse(thread_id, tool, stage, error=payload)

        logger.info(
            "tool_call_completed",
            mutated=outcome.mutation is not None,
            latency_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return CallResponse(thread_id, tool, CallStage.DONE, result=outcome.result)
