"""Client facade: one-shot buffered requests and streaming handles.

The client owns the injected collaborators (transport, mime table, settings,
logger) and builds one ``Exchange`` per call. Independent calls share nothing
mutable beyond the transport's connection pool.

Example:
    >>> async with Client() as client:
    ...     res = await client.request({"url": "http://example.com/api", "expect": "json"})
    ...     res.json()
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import httpx

from brq.core.request import RequestSpec, normalize
from brq.foundation.config import BrqSettings, get_settings
from brq.foundation.errors import RequestCancelledError
from brq.io.mime import MimeLookup, default_mime_table
from brq.io.streaming import StreamEvent, StreamEventKind
from brq.io.transport import HttpxTransport, Transport
from brq.observability import BoundLogger, get_logger
from brq.runtime import Exchange, RequestStream

if TYPE_CHECKING:
    from types import TracebackType

    from brq.core.response import Response

Options = str | httpx.URL | Mapping[str, Any]


class Client:
    """HTTP client running requests as exchanges.

    Args:
        transport: Connection factory (``HttpxTransport`` if omitted)
        mime: Content-type table (shared default if omitted)
        settings: Defaults for unset request options (env settings if omitted)
        logger: Logger for exchange tracing
    """

    __slots__ = ("transport", "mime", "settings", "_log", "_owns_transport")

    def __init__(
        self,
        transport: Transport | None = None,
        mime: MimeLookup | None = None,
        settings: BrqSettings | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._owns_transport = transport is None
        self.transport: Transport = transport if transport is not None else HttpxTransport()
        self.mime = mime or default_mime_table()
        self.settings = settings or get_settings()
        self._log = logger or get_logger("brq.client")

    def prepare(self, options: Options, *, buffer: bool) -> RequestSpec:
        """Normalize options against this client's settings."""
        return normalize(options, buffer, settings=self.settings.http)

    async def request(self, options: Options) -> Response:
        """Run a buffered exchange to completion.

        Raises:
            ConfigError: Invalid options (before any I/O)
            RequestError: The exchange's terminal failure
        """
        spec = self.prepare(options, buffer=True)
        done: asyncio.Future[Response] = asyncio.get_running_loop().create_future()

        def settle(event: StreamEvent) -> None:
            if done.done():
                return
            if event.kind is StreamEventKind.END and event.response is not None:
                done.set_result(event.response)
            elif event.kind is StreamEventKind.ERROR and event.error is not None:
                done.set_exception(event.error)
            elif event.kind is StreamEventKind.CLOSE:
                done.set_exception(RequestCancelledError("Request closed.", url=str(spec.url)))

        exchange = Exchange(spec, transport=self.transport, mime=self.mime, listener=settle, log=self._log)
        exchange.start()
        exchange.end()
        try:
            return await done
        finally:
            exchange.close()

    def stream(self, options: Options) -> RequestStream:
        """Start a streaming exchange. Call ``end()`` on the handle once the body is written.

        Must be called from a running event loop.
        """
        spec = self.prepare(options, buffer=False)
        return RequestStream(spec, transport=self.transport, mime=self.mime, log=self._log).start()

    async def aclose(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport:
            await self.transport.aclose()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()


async def request(options: Options, *, client: Client | None = None) -> Response:
    """Run one buffered request, with a throwaway client unless one is given."""
    if client is not None:
        return await client.request(options)
    async with Client() as owned:
        return await owned.request(options)
