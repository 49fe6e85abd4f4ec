"""HTTP client shared by the per-backend service clients."""

from __future__ import annotations

import logging
from typing import Literal

import httpx

from knowledge_hub.errors import BackendError, BackendNotFound, BackendTimeout, BackendUnreachable

logger = logging.getLogger(__name__)

HealthState = Literal["healthy", "unhealthy", "unreachable"]

_ERROR_BODY_CHARS = 200


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:_ERROR_BODY_CHARS] or response.reason_phrase
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase


class BackendClient:
    """One backend, one base URL, one attempt per call.

    Every failure surfaces as a ``BackendFailure`` subclass carrying the
    backend name, so callers never see raw httpx exceptions.
    """

    def __init__(
        self,
        backend: str,
        base_url: str,
        *,
        timeout: float = 30.0,
        health_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.backend = backend
        self.base_url = base_url
        self.timeout = timeout
        self.health_timeout = health_timeout
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, object] | None = None,
        params: dict[str, object] | None = None,
    ) -> dict[str, object]:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as exc:
            raise BackendTimeout(self.backend, self.timeout) from exc
        except httpx.TransportError as exc:
            raise BackendUnreachable(self.backend, str(exc) or type(exc).__name__) from exc

        if response.status_code == 404:
            raise BackendNotFound(self.backend, _error_message(response))
        if not response.is_success:
            raise BackendError(self.backend, response.status_code, _error_message(response))
        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendError(self.backend, response.status_code, "invalid JSON body") from exc
        if not isinstance(payload, dict):
            raise BackendError(self.backend, response.status_code, "expected a JSON object")
        return payload

    async def health(self) -> HealthState:
        try:
            response = await self._client.get("/health", timeout=self.health_timeout)
        except httpx.HTTPError as exc:
            logger.debug("Health probe for %s failed: %s", self.backend, exc)
            return "unreachable"
        if response.status_code != 200:
            return "unhealthy"
        try:
            body = response.json()
        except ValueError:
            return "unhealthy"
        return "healthy" if isinstance(body, dict) and body.get("status") == "healthy" else "unhealthy"

    async def tools(self) -> list[dict[str, object]]:
        payload = await self.request("GET", "/tools")
        tools = payload.get("tools")
        return list(tools) if isinstance(tools, list) else []
