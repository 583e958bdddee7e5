"""Execution state machine for one logical request.

An ``Exchange`` drives connections through a ``Transport``: it follows
redirects, enforces the whole-exchange timeout, the content-type expectation
and the size limit, and accumulates (buffered mode) or forwards (streaming
mode) the response body. Progress is reported to a listener as
``StreamEvent``s, with exactly one terminal event.

States:
    IDLE -> CONNECTING -> HEADERS_PENDING -> (REDIRECTING -> CONNECTING)*
         -> BODY_STREAMING -> COMPLETE

    FAILED and CLOSED are reachable from any non-terminal state.
"""

from __future__ import annotations

import asyncio
import codecs
from collections.abc import Callable, Mapping
from contextlib import aclosing
from enum import StrEnum
from typing import Any

from brq.core.request import BytesBody, RequestSpec, TextBody, resolve_redirect
from brq.core.response import Response
from brq.foundation.errors import (
    ConfigError,
    ContentTypeError,
    RedirectError,
    RequestCancelledError,
    RequestError,
    RequestTimeoutError,
    ResponseOverflowError,
    TransportError,
)
from brq.io.mime import MimeLookup
from brq.io.streaming import (
    StreamEvent,
    close_event,
    data_event,
    end_event,
    error_event,
    headers_event,
    response_event,
    type_event,
)
from brq.io.transport import BodyChunk, BodyEnd, Connection, ResponseHead, Transport
from brq.observability import BoundLogger, get_logger

Listener = Callable[[StreamEvent], None]

_log = get_logger("brq.exchange")


class ExchangeState(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    HEADERS_PENDING = "headers_pending"
    REDIRECTING = "redirecting"
    BODY_STREAMING = "body_streaming"
    COMPLETE = "complete"
    FAILED = "failed"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExchangeState.COMPLETE, ExchangeState.FAILED, ExchangeState.CLOSED)


def _current_task() -> asyncio.Task[Any] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class Exchange:
    """One logical request/response, possibly spanning several connections.

    Args:
        spec: Normalized request description (replaced per redirect hop)
        transport: Opens the physical connections
        mime: Content-type classification table
        listener: Receives lifecycle events, synchronously and in order
        log: Logger for lifecycle tracing

    Attributes:
        state: Current ExchangeState
        redirects: Redirect hops followed so far
        has_written_body: Caller wrote outbound body bytes (streaming mode)
        total: Response body bytes received on the final hop
        finished: Terminal transition happened
        response: Completed Response (buffered mode, after COMPLETE)
    """

    __slots__ = (
        "spec", "state", "redirects", "has_written_body", "total", "finished",
        "status_code", "headers", "type", "response",
        "_transport", "_mime", "_listener", "_log",
        "_conn", "_pump", "_timer", "_timer_armed",
        "encoding", "_decoder", "_chunks", "_text",
    )

    def __init__(
        self,
        spec: RequestSpec,
        *,
        transport: Transport,
        mime: MimeLookup,
        listener: Listener | None = None,
        log: BoundLogger | None = None,
    ) -> None:
        self.spec = spec
        self.state = ExchangeState.IDLE
        self.redirects = 0
        self.has_written_body = False
        self.total = 0
        self.finished = False
        self.status_code = 0
        self.headers: dict[str, str] = {}
        self.type = "bin"
        self.response: Response | None = None
        self._transport = transport
        self._mime = mime
        self._listener = listener
        self._log = (log or _log).bind(method=spec.method, buffer=spec.buffer)
        self._conn: Connection | None = None
        self._pump: asyncio.Task[None] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._timer_armed = False
        self.encoding: str | None = None
        self._decoder: codecs.IncrementalDecoder | None = None
        self._chunks: list[bytes] = []
        self._text: list[str] = []

    # ─────────────────────────────────────────────────────────────────────────
    # Caller Controls
    # ─────────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Open a connection for the current spec and start pumping its events.

        Must be called from a running event loop.
        """
        if self.finished:
            return
        loop = asyncio.get_running_loop()
        self.state = ExchangeState.CONNECTING
        try:
            conn = self._transport.open(
                self.spec.method,
                self.spec.url,
                self.spec.build_headers(self._mime),
                strict_ssl=self.spec.strict_ssl,
            )
            self._conn = conn
            if self.spec.body is not None:
                conn.write(self.spec.body.encode())
        except RequestError as e:
            self._fail(e)
            return
        except Exception as e:
            self._fail(TransportError.from_exception(e, url=str(self.spec.url)))
            return
        if not self._timer_armed and self.spec.timeout > 0:
            self._timer_armed = True
            self._timer = loop.call_later(self.spec.timeout / 1000, self.on_timeout)
        self._pump = loop.create_task(self._run(conn), name=f"brq-exchange:{self.spec.url}")
        self._log.debug("exchange started", url=str(self.spec.url), redirects=self.redirects)

    def write(self, data: bytes | str) -> None:
        """Send outbound body bytes (streaming mode)."""
        if self.finished or self._conn is None:
            return
        chunk = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        if chunk:
            self.has_written_body = True
            self._conn.write(chunk)

    def end(self, data: bytes | str | None = None) -> None:
        """Finish the outbound body, optionally writing a last chunk."""
        if data:
            self.write(data)
        if not self.finished and self._conn is not None:
            self._conn.end()

    def set_encoding(self, encoding: str = "utf-8") -> None:
        """Deliver streamed body chunks as text decoded with ``encoding``.

        Raises:
            ConfigError: Buffered exchange, response already arriving, or unknown codec
        """
        if self.spec.buffer:
            raise ConfigError("set_encoding() is only available on streaming requests.")
        if self.state not in (ExchangeState.IDLE, ExchangeState.CONNECTING):
            raise ConfigError("set_encoding() must be called before the response arrives.")
        try:
            codecs.lookup(encoding)
        except LookupError as e:
            raise ConfigError(f"Unknown encoding: {encoding}") from e
        self.encoding = encoding

    def close(self) -> None:
        """Cancel silently. Idempotent; never raises."""
        if self.finished:
            self._teardown()
            return
        self.finished = True
        self.state = ExchangeState.CLOSED
        self._teardown()
        self._log.debug("exchange closed", url=str(self.spec.url))
        self._emit(close_event(), terminal=True)

    def abort(self, error: RequestError | None = None) -> None:
        """Cancel and report it as the terminal error."""
        if self.finished:
            self._teardown()
            return
        self._fail(error or RequestCancelledError("Request aborted.", url=str(self.spec.url)))

    # ─────────────────────────────────────────────────────────────────────────
    # Transport Event Handlers
    # ─────────────────────────────────────────────────────────────────────────

    def on_headers(self, status: int, headers: Mapping[str, str]) -> None:
        if self.finished or self.state is not ExchangeState.CONNECTING:
            return
        self.state = ExchangeState.HEADERS_PENDING
        headers = {k.lower(): v for k, v in headers.items()}

        if (location := headers.get("location")) is not None:
            self._redirect(location)
            return

        tag = self._mime.mime_to_ext(headers.get("content-type"))
        if not self.spec.is_expected(tag):
            self._fail(ContentTypeError(
                f"Wrong content-type for response: expected {self.spec.expect}, got {tag}.",
                url=str(self.spec.url),
                details=f"expected={self.spec.expect} actual={tag}",
            ))
            return
        if self.spec.is_overflow(headers.get("content-length")):
            self._fail(ResponseOverflowError(
                "Response exceeded limit.",
                url=str(self.spec.url),
                details=f"limit={self.spec.limit} content-length={headers.get('content-length')}",
            ))
            return

        self.status_code = status
        self.headers = headers
        self.type = tag
        self.state = ExchangeState.BODY_STREAMING
        if self.spec.buffer:
            if self._mime.is_textual(tag):
                self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        elif self.encoding is not None:
            self._decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")

        self._emit(headers_event(status, headers))
        self._emit(type_event(tag))
        self._emit(response_event(status, self.spec.url))

    def on_data(self, chunk: bytes) -> None:
        if self.finished or self.state is not ExchangeState.BODY_STREAMING or not chunk:
            return
        self.total += len(chunk)

        if self.spec.buffer:
            if self.spec.limit and self.total > self.spec.limit:
                self._fail(ResponseOverflowError(
                    "Response exceeded limit.",
                    url=str(self.spec.url),
                    details=f"limit={self.spec.limit} received={self.total}",
                ))
                return
            if self._decoder is not None:
                self._text.append(self._decoder.decode(chunk))
            else:
                self._chunks.append(bytes(chunk))
            return

        if self._decoder is not None:
            if text := self._decoder.decode(chunk):
                self._emit(data_event(text))
        else:
            self._emit(data_event(bytes(chunk)))

    def on_end(self) -> None:
        if self.finished or self.state is not ExchangeState.BODY_STREAMING:
            return
        tail = self._decoder.decode(b"", final=True) if self._decoder is not None else ""

        if self.spec.buffer:
            if self._decoder is not None:
                self._text.append(tail)
                body: TextBody | BytesBody = TextBody("".join(self._text))
            else:
                body = BytesBody(b"".join(self._chunks))
            self.response = Response(
                status_code=self.status_code,
                headers=self.headers,
                type=self.type,
                url=self.spec.url,
                redirects=self.redirects,
                body=body,
            )
            self._chunks, self._text = [], []
        elif tail:
            self._emit(data_event(tail))

        self.finished = True
        self.state = ExchangeState.COMPLETE
        self._teardown()
        self._log.debug("exchange completed", url=str(self.spec.url), status=self.status_code, size=self.total)
        self._emit(end_event(self.response), terminal=True)
        self._emit(close_event(), terminal=True)

    def on_error(self, exc: BaseException) -> None:
        if self.finished:
            return
        err = exc if isinstance(exc, RequestError) else TransportError.from_exception(exc, url=str(self.spec.url))
        self._fail(err)

    def on_timeout(self) -> None:
        self._timer = None
        if self.finished:
            return
        self._fail(RequestTimeoutError(
            f"Request timed out after {self.spec.timeout:g}ms.",
            url=str(self.spec.url),
            details=f"redirects={self.redirects}",
        ))

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _redirect(self, location: str) -> None:
        if self.redirects >= self.spec.max_redirects:
            self._fail(RedirectError(
                "Too many redirects.",
                url=str(self.spec.url),
                details=f"max_redirects={self.spec.max_redirects}",
            ))
            return
        if not self.spec.buffer and self.has_written_body:
            self._fail(RedirectError("Cannot resend body for redirect.", url=str(self.spec.url)))
            return

        self.redirects += 1
        self.state = ExchangeState.REDIRECTING
        self._drop_connection()
        try:
            target = resolve_redirect(self.spec.url, location)
        except ConfigError as e:
            self._fail(e)
            return

        self._log.debug("redirect", url=str(self.spec.url), location=str(target), hop=self.redirects)
        self.spec = self.spec.with_url(target)
        self.start()
        if self._conn is not None:
            self._conn.end()

    def _fail(self, err: RequestError) -> None:
        if self.finished:
            return
        self.finished = True
        self.state = ExchangeState.FAILED
        self._teardown()
        self._log.debug("exchange failed", url=str(self.spec.url), code=str(err.error_code), error=err.message)
        self._emit(error_event(err), terminal=True)

    def _emit(self, event: StreamEvent, *, terminal: bool = False) -> None:
        if self._listener is None or (self.finished and not terminal):
            return
        self._listener(event)

    def _teardown(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._drop_connection()

    def _drop_connection(self) -> None:
        conn, self._conn = self._conn, None
        pump, self._pump = self._pump, None
        if conn is not None:
            try:
                conn.abort()
            except Exception as e:
                self._log.debug("connection abort failed", error=repr(e))
        if pump is not None and not pump.done() and pump is not _current_task():
            pump.cancel()

    async def _run(self, conn: Connection) -> None:
        """Feed one connection's events into the handlers until it is replaced."""
        try:
            async with aclosing(conn.events()) as events:
                async for event in events:
                    match event:
                        case ResponseHead(status=status, headers=headers):
                            self.on_headers(status, headers)
                        case BodyChunk(data=data):
                            self.on_data(data)
                        case BodyEnd():
                            self.on_end()
                    if self._conn is not conn:
                        return
            if self._conn is conn:
                self.on_error(TransportError(
                    "Connection closed before the response completed.",
                    url=str(self.spec.url),
                ))
        except Exception as e:
            if self._conn is conn:
                self.on_error(e)

    def __repr__(self) -> str:
        return f"Exchange({self.spec.method} {self.spec.url}, state={self.state}, redirects={self.redirects})"
