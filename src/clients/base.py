from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

import httpx

from src.shared.config import BackendConfig
from src.shared.observability import get_logger, trace_backend_call

logger = get_logger(__name__)


class BackendErrorKind(str, Enum):
    TIMEOUT = "Timeout"
    UNREACHABLE = "Unreachable"
    BAD_RESPONSE = "BadResponse"
    REJECTED = "Rejected"


class BackendError(RuntimeError):
    """Raised when a backend call fails, attributed to the originating service."""

    def __init__(
        self,
        service: str,
        kind: BackendErrorKind,
        detail: str,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(f"{service} {kind.value}: {detail}")
        self.service = service
        self.kind = kind
        self.detail = detail
        self.status_code = status_code
        self.hint: Optional[str] = None


def _body_excerpt(response: httpx.Response, limit: int = 500) -> str:
    return response.text[:limit]


class BackendClient:
    """One pooled ``httpx.AsyncClient`` plus failure normalization.

    Subclasses issue exactly one request per public call; nothing here retries.
    """

    service: str = "Backend"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout
        )

    @classmethod
    def from_config(
        cls, backend: BackendConfig, client: Optional[httpx.AsyncClient] = None
    ):
        return cls(
            base_url=backend.base_url, timeout=backend.timeout_seconds, client=client
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _error(
        self, kind: BackendErrorKind, detail: str, status_code: Optional[int] = None
    ) -> BackendError:
        return BackendError(self.service, kind, detail, status_code=status_code)

    async def _post(
        self,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        content: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        with trace_backend_call(self.service, "POST", url) as call:
            try:
                response = await self._client.post(
                    path, json=json, content=content, headers=headers
                )
            except httpx.TimeoutException as exc:
                call.fail(BackendErrorKind.TIMEOUT.value, str(exc))
                raise self._error(
                    BackendErrorKind.TIMEOUT,
                    f"no response within {self.timeout}s",
                ) from exc
            except httpx.TransportError as exc:
                call.fail(BackendErrorKind.UNREACHABLE.value, str(exc))
                raise self._error(
                    BackendErrorKind.UNREACHABLE,
                    f"{type(exc).__name__}: {exc}",
                ) from exc

            if response.is_success:
                return response

            kind = (
                BackendErrorKind.REJECTED
                if 400 <= response.status_code < 500
                else BackendErrorKind.BAD_RESPONSE
            )
            call.fail(kind.value, f"HTTP {response.status_code}")
            logger.warning(
                "backend_non_success_status",
                service=self.service,
                status_code=response.status_code,
                path=path,
            )
            raise self._error(
                kind,
                f"HTTP {response.status_code}: {_body_excerpt(response)}",
                status_code=response.status_code,
            )

    def _json_body(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise self._error(
                BackendErrorKind.BAD_RESPONSE,
                f"response body is not valid JSON: {_body_excerpt(response, 200)}",
                status_code=response.status_code,
            ) from exc

    def _require_object(self, body: Any) -> Dict[str, Any]:
        if not isinstance(body, dict):
            raise self._error(
                BackendErrorKind.BAD_RESPONSE,
                f"expected a JSON object, got {type(body).__name__}",
            )
        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise self._error(BackendErrorKind.REJECTED, str(message))
        return body


__all__ = ["BackendClient", "BackendError", "BackendErrorKind"]
