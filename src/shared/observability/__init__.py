# Observability package
from .exemplars import trace_backend_call, trace_mcp_tool
from .logging import (
    bind_thread_context,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)
from .metrics import get_metrics, setup_metrics
from .tracing import get_tracer, init_tracing, setup_tracing

__all__ = [
    "get_logger",
    "bind_thread_context",
    "setup_logging",
    "get_correlation_id",
    "set_correlation_id",
    "setup_tracing",
    "init_tracing",
    "get_tracer",
    "setup_metrics",
    "get_metrics",
    "trace_mcp_tool",
    "trace_backend_call",
]
