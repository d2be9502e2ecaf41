"""Thin aiohttp wrapper shared by the Scaleway and Nomad clients.

Both APIs authenticate with a static token header, speak JSON and answer
some calls with an empty body. Any non-2xx answer or transport failure is
raised as ``HttpError``; callers translate it into their own error type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import aiohttp
from loguru import logger

type JsonBody = dict[str, Any] | list[Any]

# Transport failures (DNS, refused connection, timeout) carry this status.
NO_RESPONSE = 0


@dataclass(frozen=True, slots=True)
class HttpError(Exception):
    status: int
    body: str

    def __str__(self) -> str:
        return f"HTTP {self.status}: {self.body}"


@dataclass(frozen=True, slots=True)
class Response[T]:
    status: int
    data: T
    headers: dict[str, str]


@runtime_checkable
class Auth(Protocol):
    async def headers(self) -> dict[str, str]: ...


class TokenAuth:
    """Static secret sent in a provider specific header.

    Scaleway expects ``X-Auth-Token`` and Nomad ``X-Nomad-Token``. An empty
    token sends no auth header at all, which Nomad accepts when ACLs are off.
    """

    def __init__(self, token: str, header: str = "X-Auth-Token") -> None:
        self._token = token
        self._header = header

    async def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers[self._header] = self._token
        return headers


class HttpClient:
    """Session holder bound to one API base URL.

    The aiohttp session is opened on first use and reopened after ``close``.
    """

    def __init__(
        self,
        base_url: str,
        auth: Auth | None = None,
        *,
        timeout: float = 30,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._default_headers = dict(default_headers or {})
        self._session: aiohttp.ClientSession | None = None
        self._log = logger.bind(component="http")

    async def __aenter__(self) -> HttpClient:
        self._open()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    def _open(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def _exchange(
        self,
        method: str,
        path: str,
        *,
        json: JsonBody | None,
        params: dict[str, Any] | None,
        text: str | None,
    ) -> Response[Any]:
        headers = dict(self._default_headers)
        if self._auth is not None:
            headers |= await self._auth.headers()
        data: bytes | None = None
        if text is not None:
            headers["Content-Type"] = "text/plain"
            data = text.encode()

        self._log.trace("{method} {path} params={params}", method=method, path=path, params=params)
        try:
            async with self._open().request(
                method, f"{self._base_url}{path}",
                headers=headers, params=params, json=json, data=data,
            ) as resp:
                raw = await resp.read()
                if resp.status >= 400:
                    body = raw.decode(errors="replace")
                    self._log.warning(
                        "{method} {path} answered {status}: {body}",
                        method=method, path=path, status=resp.status, body=body[:500],
                    )
                    raise HttpError(status=resp.status, body=body)
                payload = await resp.json(content_type=None) if raw.strip() else None
                return Response(status=resp.status, data=payload, headers=dict(resp.headers))
        except aiohttp.ClientError as e:
            raise HttpError(status=NO_RESPONSE, body=str(e) or type(e).__name__) from e
        except TimeoutError as e:
            raise HttpError(status=NO_RESPONSE, body=f"timed out after {self._timeout.total}s") from e

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: JsonBody | None = None,
        params: dict[str, Any] | None = None,
        text: str | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body, None when empty."""
        resp = await self._exchange(method, path, json=json, params=params, text=text)
        return resp.data

    async def get[T](
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        response_type: type[T],
    ) -> Response[T]:
        """GET keeping status and headers, e.g. for pagination totals."""
        return await self._exchange("GET", path, json=None, params=params, text=None)
