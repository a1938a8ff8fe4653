"""
Tool registry: maps a tool name to its input model and handler, and validates
inputs before anything is dispatched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type

import pydantic
from pydantic import BaseModel, ConfigDict

from .errors import UnknownToolError, ValidationError
from .session_store import Mutator, Session


class ToolInput(BaseModel):
    """Base for per-tool input structs; unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


@dataclass
class ToolContext:
    thread_id: str
    session: Session
    deps: Any


@dataclass
class ToolOutcome:
    """Handler result plus an optional session mutation committed on success."""

    result: Dict[str, Any]
    mutation: Optional[Mutator] = None


Handler = Callable[[ToolContext, Any], Awaitable[ToolOutcome]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: Type[ToolInput]
    handler: Handler
    read_only: bool = True
    mutates_session: bool = False
    idempotent: bool = True

    def input_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)


def _field_path(loc: Iterable[Any]) -> str:
    parts = [str(part) for part in loc]
    return ".".join(parts) if parts else "input"


class ToolRegistry:
    def __init__(self, specs: Iterable[ToolSpec] = ()) -> None:
        self._specs: Dict[str, ToolSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._specs:
            raise ValueError(f"Tool '{spec.name}' is already registered")
        self._specs[spec.name] = spec

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    @property
    def names(self) -> List[str]:
        return list(self._specs)

    def resolve(self, name: str) -> ToolSpec:
        spec = self._specs.get(name)
        if spec is None:
            raise UnknownToolError(name)
        return spec

    def validate(self, name: str, payload: Any) -> ToolInput:
        """
        Validate ``payload`` against the tool's input model.

        Raises:
            UnknownToolError: tool is not registered
            ValidationError: payload is malformed; names the first offending field
        """
        spec = self.resolve(name)
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationError("input", "must be a JSON object")
        try:
            return spec.input_model.model_validate(payload)
        except pydantic.ValidationError as exc:
            first = exc.errors()[0]
            raise ValidationError(_field_path(first.get("loc", ())), first["msg"])

    def describe(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": spec.name,
                "description": spec.description,
                "inputSchema": spec.input_schema(),
            }
            for spec in self._specs.values()
        ]
