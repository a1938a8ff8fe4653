from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from src.shared.config import BackendConfig

from .base import BackendClient, BackendErrorKind

XSD = "http://www.w3.org/2001/XMLSchema#"
_INTEGER_TYPES = {
    f"{XSD}{name}"
    for name in (
        "integer",
        "int",
        "long",
        "short",
        "byte",
        "nonNegativeInteger",
        "nonPositiveInteger",
        "positiveInteger",
        "negativeInteger",
        "unsignedInt",
        "unsignedLong",
        "unsignedShort",
        "unsignedByte",
    )
}
_FLOAT_TYPES = {f"{XSD}{name}" for name in ("decimal", "double", "float")}
_BOOLEAN_TYPE = f"{XSD}boolean"


@dataclass
class QueryResult:
    """Tabular SPARQL result: ordered rows of column -> scalar."""

    variables: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    boolean: Optional[bool] = None

    @property
    def total_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "variables": list(self.variables),
            "rows": [dict(row) for row in self.rows],
            "total-count": self.total_count,
        }
        if self.boolean is not None:
            payload["boolean"] = self.boolean
        return payload


def convert_term(term: Any) -> Any:
    """Convert one SPARQL JSON binding term to a Python scalar.

    Raises:
        ValueError: when the term is not an object or its ``value`` or
            ``datatype`` is not a string
    """
    if not isinstance(term, dict):
        raise ValueError(f"term is not an object: {term!r}")
    value = term.get("value")
    datatype = term.get("datatype")
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"term value is not a string: {value!r}")
    if not datatype:
        return value
    if not isinstance(datatype, str):
        raise ValueError(f"term datatype is not a string: {datatype!r}")
    try:
        if datatype in _INTEGER_TYPES:
            return int(value)
        if datatype in _FLOAT_TYPES:
            return float(value)
    except ValueError:
        return value
    if datatype == _BOOLEAN_TYPE:
        return value.strip().lower() in {"true", "1"}
    return value


def parse_results(body: Dict[str, Any]) -> QueryResult:
    """Parse a SPARQL 1.1 Query Results JSON document.

    Raises:
        ValueError: when the document has neither bindings nor a boolean, or
            any part of it has the wrong shape
    """
    head = body.get("head") or {}
    if not isinstance(head, dict):
        raise ValueError(f"head is not an object: {head!r}")
    raw_vars = head.get("vars") or []
    if not isinstance(raw_vars, list) or not all(isinstance(v, str) for v in raw_vars):
        raise ValueError(f"head.vars is not a list of names: {raw_vars!r}")
    variables = list(raw_vars)

    if "boolean" in body:
        if not isinstance(body["boolean"], bool):
            raise ValueError(f"boolean is not true or false: {body['boolean']!r}")
        return QueryResult(variables=variables, boolean=body["boolean"])

    results = body.get("results")
    if isinstance(results, dict):
        bindings = results.get("bindings")
    elif isinstance(results, list):
        bindings = results
    else:
        bindings = None
    if not isinstance(bindings, list):
        raise ValueError("results.bindings is missing or not a list")

    rows: List[Dict[str, Any]] = []
    for binding in bindings:
        if not isinstance(binding, dict):
            raise ValueError(f"binding is not an object: {binding!r}")
        rows.append({name: convert_term(term) for name, term in binding.items()})

    if not variables:
        # Preserve first-seen column order when the head is absent
        for row in rows:
            for name in row:
                if name not in variables:
                    variables.append(name)

    return QueryResult(variables=variables, rows=rows)


class GraphQueryClient(BackendClient):
    """Client for the SPARQL triple store endpoint."""

    service = "GraphQuery"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        path: str = "/sparql",
    ) -> None:
        super().__init__(base_url=base_url, timeout=timeout, client=client)
        self.path = path

    @classmethod
    def from_config(
        cls, backend: BackendConfig, client: Optional[httpx.AsyncClient] = None
    ):
        return cls(
            base_url=backend.base_url,
            timeout=backend.timeout_seconds,
            client=client,
            path=backend.path or "/sparql",
        )

    async def execute(self, query: str) -> QueryResult:
        """Run ``query`` and return the parsed result set."""
        response = await self._post(
            self.path,
            content=query,
            headers={
                "Content-Type": "application/sparql-query",
                "Accept": "application/sparql-results+json",
            },
        )
        body = self._require_object(self._json_body(response))
        try:
            return parse_results(body)
        except ValueError as exc:
            raise self._error(BackendErrorKind.BAD_RESPONSE, str(exc)) from exc


__all__ = ["GraphQueryClient", "QueryResult", "convert_term", "parse_results"]
