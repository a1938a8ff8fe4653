from __future__ import annotations

from typing import Any, Dict, Optional

from .base import BackendClient, BackendErrorKind


class FormatterClient(BackendClient):
    """Client for the result formatting service."""

    service = "Formatter"

    async def format(
        self, results: Any, query_type: str, query: Optional[str] = None
    ) -> Dict[str, Any]:
        """POST /format-results and return the ``formatted`` member unmodified."""

        payload: Dict[str, Any] = {"results": results, "queryType": query_type}
        if query is not None:
            payload["query"] = query

        response = await self._post("/format-results", json=payload)
        body = self._require_object(self._json_body(response))

        if "formatted" not in body:
            raise self._error(
                BackendErrorKind.BAD_RESPONSE, "response is missing 'formatted'"
            )
        return body["formatted"]


__all__ = ["FormatterClient"]
