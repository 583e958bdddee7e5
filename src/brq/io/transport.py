"""Transport adapter - the narrow interface the engine drives.

A ``Transport`` opens a ``Connection`` for one physical request. The
connection accepts outbound body bytes (``write``/``end``), yields the
response as a sequence of typed events (``events``), and can be aborted.
Redirects, timeouts and size limits are NOT the transport's concern; the
exchange state machine handles them.

The default implementation runs on ``httpx.AsyncClient`` with redirect
following disabled and no client-side timeout.

Example:
    >>> transport = HttpxTransport()
    >>> conn = transport.open("GET", httpx.URL("https://example.com/"), {})
    >>> conn.end()
    >>> async for event in conn.events():
    ...     print(event)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx


# ─────────────────────────────────────────────────────────────────────────────
# Transport Events
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(slots=True, frozen=True)
class ResponseHead:
    """Status line and headers of a response (header names lower-cased)."""
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class BodyChunk:
    """A chunk of response body bytes, in arrival order."""
    data: bytes

    def __len__(self) -> int:
        return len(self.data)


@dataclass(slots=True, frozen=True)
class BodyEnd:
    """The response body is complete."""


TransportEvent = ResponseHead | BodyChunk | BodyEnd


# ─────────────────────────────────────────────────────────────────────────────
# Protocols
# ─────────────────────────────────────────────────────────────────────────────

@runtime_checkable
class Connection(Protocol):
    """One physical request/response."""

    def write(self, data: bytes) -> None: ...
    def end(self) -> None: ...
    def abort(self) -> None: ...
    def events(self) -> AsyncGenerator[TransportEvent, None]: ...


@runtime_checkable
class Transport(Protocol):
    """Factory for connections. Constructed once and injected into the client."""

    def open(
        self,
        method: str,
        url: httpx.URL,
        headers: Mapping[str, str],
        *,
        strict_ssl: bool = True,
    ) -> Connection: ...

    async def aclose(self) -> None: ...


# ─────────────────────────────────────────────────────────────────────────────
# httpx Implementation
# ─────────────────────────────────────────────────────────────────────────────

class HttpxConnection:
    """Connection backed by ``AsyncClient.send(stream=True)``.

    The request is built lazily once the first body chunk or ``end()``
    arrives: a bodiless request goes out without content, anything written
    before ``end()`` is streamed through an async generator.
    """

    __slots__ = ("_client", "_method", "_url", "_headers", "_body", "_ended", "_aborted")

    def __init__(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: httpx.URL,
        headers: Mapping[str, str],
    ) -> None:
        self._client = client
        self._method = method
        self._url = url
        self._headers = dict(headers)
        self._body: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._ended = False
        self._aborted = False

    def write(self, data: bytes) -> None:
        if self._ended or self._aborted:
            raise RuntimeError("Cannot write to a finished connection.")
        if data:
            self._body.put_nowait(bytes(data))

    def end(self) -> None:
        if self._ended:
            return
        self._ended = True
        self._body.put_nowait(None)

    def abort(self) -> None:
        if self._aborted:
            return
        self._aborted = True
        if not self._ended:
            self._ended = True
            self._body.put_nowait(None)

    async def _content(self, first: bytes) -> AsyncIterator[bytes]:
        yield first
        while (chunk := await self._body.get()) is not None:
            yield chunk

    async def events(self) -> AsyncGenerator[TransportEvent, None]:
        first = await self._body.get()
        if self._aborted:
            return
        request = self._client.build_request(
            self._method,
            self._url,
            headers=self._headers,
            content=None if first is None else self._content(first),
        )
        response = await self._client.send(request, stream=True)
        try:
            yield ResponseHead(
                status=response.status_code,
                headers={k.lower(): v for k, v in response.headers.items()},
            )
            async for chunk in response.aiter_bytes():
                if chunk:
                    yield BodyChunk(chunk)
            yield BodyEnd()
        finally:
            await response.aclose()


class HttpxTransport:
    """Transport over ``httpx.AsyncClient``.

    One client per certificate-verification mode is created lazily, unless a
    client is injected, in which case it is used for every request and left
    open on ``aclose()``.
    """

    __slots__ = ("_client", "_owned", "_client_kwargs")

    def __init__(self, client: httpx.AsyncClient | None = None, **client_kwargs: Any) -> None:
        self._client = client
        self._owned: dict[bool, httpx.AsyncClient] = {}
        self._client_kwargs = client_kwargs

    def _get_client(self, strict_ssl: bool) -> httpx.AsyncClient:
        """Get or create the httpx client for a verification mode."""
        if self._client is not None:
            return self._client
        if (client := self._owned.get(strict_ssl)) is None:
            client = httpx.AsyncClient(
                follow_redirects=False,
                verify=strict_ssl,
                timeout=None,
                **self._client_kwargs,
            )
            self._owned[strict_ssl] = client
        return client

    def open(
        self,
        method: str,
        url: httpx.URL,
        headers: Mapping[str, str],
        *,
        strict_ssl: bool = True,
    ) -> HttpxConnection:
        return HttpxConnection(self._get_client(strict_ssl), method, url, headers)

    async def aclose(self) -> None:
        """Close the clients this transport created."""
        owned, self._owned = self._owned, {}
        for client in owned.values():
            await client.aclose()
