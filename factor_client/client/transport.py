"""
Transport protocol for the ledger's JSON HTTP API.

Defines the seam where a concrete HTTP implementation plugs in. The
ledger client depends on this protocol, not on httpx directly, so tests
can swap in a fake transport without editing client logic.

Implementations:
    - HttpxTransport (default, one ``httpx.AsyncClient`` per request)
    - fakes in tests, returning canned responses

Every transport-level failure is raised as ``NetworkError`` with one of
these codes:

    TIMEOUT            request timed out
    CONNECTION_FAILED  could not connect
    HTTP_ERROR         server answered with a non-2xx status
    INVALID_JSON       body is not a JSON object
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

import httpx

from factor_client.errors import NetworkError


@runtime_checkable
class JsonTransport(Protocol):
    """Async transport for JSON GET and POST requests."""

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """GET ``url`` and return the parsed JSON object.

        Raises:
            NetworkError: On any transport-level failure.
        """
        ...

    async def post_json(self, url: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        """POST ``payload`` as JSON and return the parsed JSON object.

        Raises:
            NetworkError: On any transport-level failure.
        """
        ...


class HttpxTransport:
    """Default transport using httpx.AsyncClient.

    A fresh client is opened and closed for each request, so nothing is
    held across the caller's suspension points.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return await self._request("GET", url, params=dict(params) if params else None)

    async def post_json(self, url: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("POST", url, json=dict(payload))

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(
                    method, url, headers={"Accept": "application/json"}, **kwargs
                )
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise NetworkError(f"{method} {url} timed out: {e}", error_code="TIMEOUT", url=url) from e
        except httpx.ConnectError as e:
            raise NetworkError(
                f"cannot connect to {url}: {e}", error_code="CONNECTION_FAILED", url=url
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise NetworkError(
                f"{method} {url} returned HTTP {status}",
                error_code="HTTP_ERROR",
                url=url,
                status_code=status,
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {url} failed: {e}", error_code="HTTP_ERROR", url=url) from e

        try:
            body = response.json()
        except ValueError as e:
            raise NetworkError(
                f"{method} {url} returned invalid JSON", error_code="INVALID_JSON", url=url
            ) from e
        if not isinstance(body, dict):
            raise NetworkError(
                f"{method} {url} returned {type(body).__name__}, expected an object",
                error_code="INVALID_JSON",
                url=url,
            )
        return body
