"""Shared fixtures: a scripted in-memory transport and isolated settings."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Mapping
from dataclasses import dataclass, field

import httpx
import pytest

from brq.foundation.config import BrqSettings, clear_settings_cache
from brq.io.transport import BodyChunk, BodyEnd, ResponseHead, TransportEvent
from brq.observability import configure_logging


@dataclass
class Route:
    """Scripted response for one URL.

    Attributes:
        status: Status code sent with the head
        headers: Response headers
        chunks: Body chunks, delivered one per event
        delay: Seconds to wait before the head
        hang: Never send the head
        stall: Send the head and chunks, then never end
        truncate: Send the head and chunks, then stop without an end event
        error: Raised instead of sending the head
    """
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    chunks: list[bytes] = field(default_factory=list)
    delay: float = 0.0
    hang: bool = False
    stall: bool = False
    truncate: bool = False
    error: Exception | None = None


class FakeConnection:
    """Connection that records what the engine does to it."""

    def __init__(self, method: str, url: httpx.URL, headers: Mapping[str, str], route: Route, strict_ssl: bool) -> None:
        self.method = method
        self.url = url
        self.headers = dict(headers)
        self.route = route
        self.strict_ssl = strict_ssl
        self.written: list[bytes] = []
        self.ended = False
        self.aborted = False
        self.pulled_data = False
        self._ready = asyncio.Event()

    @property
    def body(self) -> bytes:
        return b"".join(self.written)

    def write(self, data: bytes) -> None:
        if self.ended:
            raise RuntimeError("write after end")
        self.written.append(data)

    def end(self) -> None:
        self.ended = True
        self._ready.set()

    def abort(self) -> None:
        self.aborted = True
        self._ready.set()

    async def events(self) -> AsyncGenerator[TransportEvent, None]:
        await self._ready.wait()
        route = self.route
        if route.delay:
            await asyncio.sleep(route.delay)
        if self.aborted:
            return
        if route.error is not None:
            raise route.error
        if route.hang:
            await asyncio.Event().wait()
        yield ResponseHead(route.status, route.headers)
        for chunk in route.chunks:
            await asyncio.sleep(0)
            if self.aborted:
                return
            self.pulled_data = True
            yield BodyChunk(chunk)
        if route.stall:
            await asyncio.Event().wait()
        if route.truncate:
            return
        yield BodyEnd()


class FakeTransport:
    """Transport serving scripted routes keyed by full URL string (404 otherwise)."""

    def __init__(self) -> None:
        self.routes: dict[str, Route] = {}
        self.connections: list[FakeConnection] = []
        self.closed = False

    def route(self, url: str, **kw: object) -> FakeTransport:
        self.routes[url] = Route(**kw)  # type: ignore[arg-type]
        return self

    def open(
        self,
        method: str,
        url: httpx.URL,
        headers: Mapping[str, str],
        *,
        strict_ssl: bool = True,
    ) -> FakeConnection:
        route = self.routes.get(str(url), Route(status=404))
        conn = FakeConnection(method, url, headers, route, strict_ssl)
        self.connections.append(conn)
        return conn

    async def aclose(self) -> None:
        self.closed = True

    @property
    def urls(self) -> list[str]:
        return [str(c.url) for c in self.connections]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def settings() -> BrqSettings:
    """Settings independent of the process environment."""
    return BrqSettings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("BRQ_HTTP_LIMIT", "BRQ_HTTP_TIMEOUT", "BRQ_HTTP_MAX_REDIRECTS", "BRQ_HTTP_STRICT_SSL",
                 "BRQ_HTTP_USER_AGENT", "BRQ_LOG_LEVEL", "BRQ_LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    configure_logging("none", "DEBUG")
