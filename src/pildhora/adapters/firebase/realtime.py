"""Realtime database adapter over the REST API.

Paths map to ``{database_url}/{path}.json``; reads are ``GET`` and writes are
``PUT``. Requests go through ``ResilientClient`` so transient failures are
retried and the call rate stays bounded.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from pildhora.adapters.http_resilience import ResilientClient
from pildhora.domain.ports import StoreError, StorePermissionError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    from pildhora.config import ResilienceConfig

type AccessTokenProvider = Callable[[], Awaitable[str]]

log = getLogger(__name__)


def path_url(path: str) -> str:
    return "/" + quote(path.strip("/"), safe="/") + ".json"


class RealtimeRestStore:
    """Implements ``RealtimeStore``. Use as an async context manager."""

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        access_token: AccessTokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = ResilientClient(config, transport=transport)
        self._access_token = access_token

    async def __aenter__(self) -> RealtimeRestStore:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def read_path(self, path: str) -> object | None:
        response = await self._send("GET", path)
        try:
            return response.json()
        except ValueError as exc:
            raise StoreError(f"GET {path}: response is not JSON") from exc

    async def write_path(self, path: str, value: object) -> None:
        await self._send("PUT", path, value)

    async def _send(self, method: str, path: str, value: object = None) -> httpx.Response:
        params: dict[str, str] = {}
        if self._access_token is not None:
            params["access_token"] = await self._access_token()

        try:
            if method == "PUT":
                response = await self._client.put(path_url(path), params=params, json=value)
            else:
                response = await self._client.get(path_url(path), params=params)
        except httpx.HTTPError as exc:
            raise StoreError(f"{method} {path}: {exc}") from exc

        if response.status_code in {401, 403}:
            raise StorePermissionError(f"{method} {path}: {_error_message(response)}")
        if response.is_error:
            raise StoreError(
                f"{method} {path}: HTTP {response.status_code} {_error_message(response)}"
            )
        log.debug("%s %s -> %s", method, path, response.status_code)
        return response


def _error_message(response: httpx.Response) -> str:
    try:
        payload: Any = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict) and "error" in payload:
        return str(payload["error"])
    return response.reason_phrase
