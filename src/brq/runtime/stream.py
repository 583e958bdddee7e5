"""Streaming request handle.

``RequestStream`` wraps a streaming-mode ``Exchange``. Events are queued as
the exchange produces them and consumed with ``events()``, or with plain
``async for`` over the body chunks.

Example:
    >>> async with client.stream({"url": "http://example.com/feed"}) as stream:
    ...     stream.set_encoding("utf-8")
    ...     stream.end()
    ...     async for chunk in stream:
    ...         print(chunk)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from typing import TYPE_CHECKING

from brq.io.streaming import StreamEvent, StreamEventKind

from .exchange import Exchange, ExchangeState

if TYPE_CHECKING:
    from types import TracebackType

    from brq.core.request import RequestSpec
    from brq.foundation.errors import RequestError
    from brq.io.mime import MimeLookup
    from brq.io.transport import Transport
    from brq.observability import BoundLogger


class RequestStream:
    """Handle for one streaming exchange.

    Attributes:
        status_code: Final status once headers arrived (else None)
        headers: Final lower-cased headers once they arrived
        type: Classified content-type tag once headers arrived
    """

    __slots__ = ("_exchange", "_queue", "_done", "status_code", "headers", "type")

    def __init__(
        self,
        spec: RequestSpec,
        *,
        transport: Transport,
        mime: MimeLookup,
        log: BoundLogger | None = None,
    ) -> None:
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self._done = False
        self.status_code: int | None = None
        self.headers: Mapping[str, str] = {}
        self.type: str | None = None
        self._exchange = Exchange(spec, transport=transport, mime=mime, listener=self._on_event, log=log)

    def _on_event(self, event: StreamEvent) -> None:
        match event.kind:
            case StreamEventKind.HEADERS:
                self.status_code = event.status
                self.headers = event.headers or {}
            case StreamEventKind.TYPE:
                self.type = event.type
        self._queue.put_nowait(event)

    @property
    def state(self) -> ExchangeState:
        return self._exchange.state

    @property
    def redirects(self) -> int:
        return self._exchange.redirects

    @property
    def finished(self) -> bool:
        return self._exchange.finished

    # ─────────────────────────────────────────────────────────────────────────
    # Controls
    # ─────────────────────────────────────────────────────────────────────────

    def start(self) -> RequestStream:
        self._exchange.start()
        return self

    def write(self, data: bytes | str) -> RequestStream:
        self._exchange.write(data)
        return self

    def end(self, data: bytes | str | None = None) -> RequestStream:
        self._exchange.end(data)
        return self

    def set_encoding(self, encoding: str = "utf-8") -> RequestStream:
        self._exchange.set_encoding(encoding)
        return self

    def close(self) -> None:
        self._exchange.close()

    def abort(self, error: RequestError | None = None) -> None:
        self._exchange.abort(error)

    # ─────────────────────────────────────────────────────────────────────────
    # Consumption
    # ─────────────────────────────────────────────────────────────────────────

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield lifecycle events up to and including the terminal one."""
        while not self._done:
            event = await self._queue.get()
            if event.kind.is_terminal:
                self._done = True
            yield event

    async def __aiter__(self) -> AsyncIterator[bytes | str]:
        """Yield body chunks; raises the terminal error if the exchange fails."""
        async for event in self.events():
            if event.kind is StreamEventKind.DATA and event.data is not None:
                yield event.data
            elif event.kind is StreamEventKind.ERROR and event.error is not None:
                raise event.error

    async def read(self) -> bytes | str:
        """Collect the whole body (text if an encoding was set)."""
        chunks = [chunk async for chunk in self]
        if self._exchange.encoding is not None:
            return "".join(chunks)  # type: ignore[arg-type]
        return b"".join(chunks)  # type: ignore[arg-type]

    async def __aenter__(self) -> RequestStream:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"RequestStream({self._exchange!r})"
