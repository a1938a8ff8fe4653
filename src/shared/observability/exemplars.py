# OpenTelemetry spans paired with Prometheus metrics for tool calls and
# outbound backend requests

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.trace import SpanKind, StatusCode

from .logging import get_logger
from .metrics import (
    backend_request_duration_seconds,
    backend_requests_total,
    mcp_tool_calls_total,
    mcp_tool_duration_seconds,
)
from .tracing import get_tracer

logger = get_logger(__name__)


def get_trace_context() -> Dict[str, str]:
    """
    Get current trace context for exemplar linking.

    Returns:
        Dictionary with trace_id and span_id
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        return {
            "trace_id": format(ctx.trace_id, "032x"),
            "span_id": format(ctx.span_id, "016x"),
        }
    return {}


@dataclass
class TracedCall:
    """Outcome holder for a traced span; callers flip it to an error label."""

    span: Any
    status: str = "success"
    error: Optional[str] = None

    def fail(self, status: str, error: str) -> None:
        self.status = status
        self.error = error


@contextmanager
def trace_mcp_tool(tool_name: str, arguments: Dict[str, Any]):
    """
    Context manager to trace MCP tool execution with metrics and exemplars.

    Tool errors are returned as envelopes rather than raised, so the caller
    marks them through ``TracedCall.fail``.

    Args:
        tool_name: Name of the MCP tool
        arguments: Tool arguments

    Yields:
        TracedCall
    """
    tracer = get_tracer(__name__)

    with tracer.start_as_current_span(
        f"mcp.tool.{tool_name}",
        kind=SpanKind.INTERNAL,
        attributes={
            "mcp.tool.name": tool_name,
            "mcp.tool.args": str(arguments)[:500],
        },
    ) as span:
        call = TracedCall(span=span)
        with mcp_tool_duration_seconds.labels(tool_name=tool_name).time():
            try:
                yield call
            except Exception as e:
                call.fail("error", str(e))
                span.record_exception(e)
                raise
            finally:
                status = "success" if call.status == "success" else "error"
                mcp_tool_calls_total.labels(tool_name=tool_name, status=status).inc(
                    exemplar=get_trace_context() or None
                )
                span.set_attribute("mcp.tool.status", status)
                if call.error:
                    span.set_attribute("mcp.tool.error", call.error)
                    span.set_status(StatusCode.ERROR, call.error)


@contextmanager
def trace_backend_call(service: str, method: str, url: str):
    """
    Context manager to trace one outbound backend request.

    Args:
        service: Backend name (Translator, GraphQuery, Formatter)
        method: HTTP method
        url: Request URL

    Yields:
        TracedCall whose status becomes the ``status`` label
    """
    tracer = get_tracer(__name__)

    with tracer.start_as_current_span(
        f"backend.{service}",
        kind=SpanKind.CLIENT,
        attributes={
            "backend.service": service,
            "http.method": method,
            "http.url": url,
        },
    ) as span:
        call = TracedCall(span=span)
        with backend_request_duration_seconds.labels(service=service).time():
            try:
                yield call
            except Exception as e:
                if call.status == "success":
                    call.fail("error", str(e))
                raise
            finally:
                backend_requests_total.labels(
                    service=service, status=call.status
                ).inc(exemplar=get_trace_context() or None)
                span.set_attribute("backend.status", call.status)
                if call.error:
                    span.set_status(StatusCode.ERROR, call.error)
