"""brq - asyncio HTTP request engine with buffered and streaming modes.

A single call normalizes loose options into a validated request, follows
redirects, enforces a whole-exchange timeout, a response size limit and an
expected content type, and hands back either a buffered ``Response`` or a
stream of typed lifecycle events.

Quick Start:
    >>> import brq
    >>> res = await brq.request("http://example.com/api?q=1")
    >>> res.status_code, res.type
    (200, 'json')
    >>> res.json()
    {'ok': True}

Options:
    >>> await brq.request({
    ...     "method": "POST",
    ...     "url": "https://user:pw@example.com/items",
    ...     "json": {"name": "widget"},
    ...     "expect": "json",
    ...     "timeout": 2000,
    ...     "maxRedirects": 2,
    ... })

Streaming:
    >>> async with brq.Client() as client:
    ...     stream = client.stream("http://example.com/large.bin")
    ...     stream.end()
    ...     async for chunk in stream:
    ...         handle(chunk)

Configuration (environment, prefix ``BRQ_``):
    BRQ_HTTP_LIMIT, BRQ_HTTP_TIMEOUT, BRQ_HTTP_MAX_REDIRECTS,
    BRQ_HTTP_STRICT_SSL, BRQ_HTTP_USER_AGENT, BRQ_LOG_LEVEL, BRQ_LOG_FORMAT
"""

from __future__ import annotations

__version__ = "0.1.0"

# Client
from .client import Client, request

# Core
from .core import BytesBody, RequestOptions, RequestSpec, Response, TextBody, is_overflow, normalize

# Errors
from .foundation.errors import (
    ConfigError,
    ContentTypeError,
    DecodeError,
    ErrorCode,
    RedirectError,
    RequestCancelledError,
    RequestError,
    RequestFailure,
    RequestTimeoutError,
    ResponseOverflowError,
    TransportError,
)

# Config
from .foundation.config import BrqSettings, get_settings

# I/O
from .io import HttpxTransport, MimeLookup, MimeTable, Transport
from .io.streaming import StreamEvent, StreamEventKind

# Runtime
from .runtime import Exchange, ExchangeState, RequestStream

# Logging
from .observability import configure_logging, get_logger

__all__ = [
    "__version__",
    # Client
    "Client", "request",
    # Core
    "RequestOptions", "RequestSpec", "Response", "TextBody", "BytesBody", "normalize", "is_overflow",
    # Errors
    "ErrorCode", "RequestFailure", "RequestError", "ConfigError", "RedirectError", "ContentTypeError",
    "ResponseOverflowError", "RequestTimeoutError", "DecodeError", "TransportError", "RequestCancelledError",
    # Config
    "BrqSettings", "get_settings",
    # I/O
    "Transport", "HttpxTransport", "MimeLookup", "MimeTable", "StreamEvent", "StreamEventKind",
    # Runtime
    "Exchange", "ExchangeState", "RequestStream",
    # Logging
    "configure_logging", "get_logger",
]
