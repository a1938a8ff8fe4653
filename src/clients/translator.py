from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from .base import BackendClient, BackendErrorKind


class TranslatorClient(BackendClient):
    """Client for the natural-language to SPARQL translation service."""

    service = "Translator"

    async def translate(
        self,
        question: str,
        thread_id: str,
        selected_location_ids: Optional[Sequence[str]] = None,
    ) -> str:
        """Return the SPARQL text produced for ``question`` using POST /messages.

        ``selectedLocationIds`` is sent whenever a selection is given, even an
        empty one; the service decides whether an empty selection is an error.
        """

        payload: Dict[str, Any] = {"question": question, "threadId": thread_id}
        if selected_location_ids is not None:
            payload["selectedLocationIds"] = list(selected_location_ids)

        response = await self._post("/messages", json=payload)
        body = self._require_object(self._json_body(response))

        query = body.get("query")
        if not isinstance(query, str) or not query.strip():
            raise self._error(
                BackendErrorKind.BAD_RESPONSE, "response is missing a 'query' string"
            )
        return query


__all__ = ["TranslatorClient"]
