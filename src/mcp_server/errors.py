"""
Tool error taxonomy and the protocol error payload.

Local errors (validation, unknown tool, session) are raised before any
backend is contacted. Backend failures arrive as
:class:`src.clients.base.BackendError` and keep their service attribution.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from src.clients.base import BackendError


class ToolError(Exception):
    """Base class for errors reported through the protocol envelope."""

    kind = "ToolError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(ToolError):
    """Raised when a tool input does not match its declared schema."""

    kind = "ValidationError"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"Invalid input for '{field}': {message}")
        self.field = field

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["field"] = self.field
        return payload


class UnknownToolError(ToolError):
    kind = "UnknownToolError"

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool '{name}'")
        self.name = name


class SessionError(ToolError):
    """Session state conflicts with what the tool requires."""

    kind = "SessionError"

    def __init__(self, reason: str, message: str, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.hint = hint

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["reason"] = self.reason
        if self.hint:
            payload["hint"] = self.hint
        return payload


def backend_error_payload(
    exc: BackendError, hint: Optional[str] = None
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "kind": "BackendError",
        "message": exc.detail,
        "service": exc.service,
        "reason": exc.kind.value,
    }
    if hint:
        payload["hint"] = hint
    return payload


def error_payload(exc: BaseException) -> Dict[str, Any]:
    """Build the ``error`` member of a response envelope for any exception."""
    if isinstance(exc, ToolError):
        return exc.to_payload()
    if isinstance(exc, BackendError):
        return backend_error_payload(exc, hint=exc.hint)
    return {
        "kind": "InternalError",
        "message": f"{type(exc).__name__}: {exc}",
    }


__all__ = [
    "BackendError",
    "SessionError",
    "ToolError",
    "UnknownToolError",
    "ValidationError",
    "backend_error_payload",
    "error_payload",
]
