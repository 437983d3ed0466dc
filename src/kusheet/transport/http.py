"""
REST HTTP client for the KU SHEET API.

Responses come wrapped as ``{"success": true, "data": ...}``; callers get
the ``data`` part.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from kusheet.errors import AuthError, ConnectionError, ForbiddenError, HttpError

DEFAULT_BASE_URL = "http://localhost:5000/api"
DEFAULT_TIMEOUT = 30.0


class HttpClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": "kusheet-sdk/0.1.0", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    def _auth_headers(self, authenticated: bool) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if authenticated and self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _unwrap(json_data: Any) -> Any:
        if isinstance(json_data, dict) and "success" in json_data and "data" in json_data:
            return json_data["data"]
        return json_data

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        message = f"HTTP {resp.status_code}: {resp.text[:200]}"
        if resp.status_code == 401:
            raise AuthError(message)
        if resp.status_code == 403:
            raise ForbiddenError(message)
        raise HttpError(resp.status_code, message)

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
        authenticated: bool = True,
    ) -> Any:
        kwargs: dict[str, Any] = {"params": params, "headers": self._auth_headers(authenticated)}
        if body is not None:
            kwargs["json"] = body
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise ConnectionError(f"{method} {path} failed: {e!r}")
        self._raise_for_status(resp)
        return self._unwrap(resp.json())

    async def get(self, path: str, params: Optional[dict[str, Any]] = None, **kwargs: Any) -> Any:
        return await self._request("GET", path, params=params, **kwargs)

    async def post(self, path: str, body: Optional[dict[str, Any]] = None, **kwargs: Any) -> Any:
        return await self._request("POST", path, body=body, **kwargs)

    async def patch(self, path: str, body: Optional[dict[str, Any]] = None, **kwargs: Any) -> Any:
        return await self._request("PATCH", path, body=body, **kwargs)

    @asynccontextmanager
    async def stream(self, path: str) -> AsyncIterator[httpx.Response]:
        """Open a long-lived GET stream. EventSource cannot send headers, so the token rides in the query."""
        params = {"token": self._token or ""}
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        timeout = httpx.Timeout(DEFAULT_TIMEOUT, read=None)
        async with self._client.stream("GET", path, params=params, headers=headers, timeout=timeout) as resp:
            if resp.status_code >= 400:
                await resp.aread()
            self._raise_for_status(resp)
            yield resp

    async def close(self) -> None:
        await self._client.aclose()
