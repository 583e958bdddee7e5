"""Typed lifecycle events for incremental response delivery.

An exchange reports its progress as a sequence of ``StreamEvent``s:

    headers -> type -> response -> data* -> end -> close

or a single ``error``, or a single ``close`` when the caller cancels. At most
one terminal event (``close`` or ``error``) is ever delivered and nothing
follows it.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from brq.core.response import Response
    from brq.foundation.errors import RequestError


class StreamEventKind(StrEnum):
    """Types of lifecycle events."""
    HEADERS = "headers"    # Response headers accepted (no redirect, checks passed)
    TYPE = "type"          # Classified content-type tag
    RESPONSE = "response"  # Final hop identified (status, url)
    DATA = "data"          # Body chunk, bytes or decoded text
    END = "end"            # Body complete
    CLOSE = "close"        # Exchange over (after end, or on silent cancellation)
    ERROR = "error"        # Exchange failed

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_KINDS


_TERMINAL_KINDS = frozenset({StreamEventKind.CLOSE, StreamEventKind.ERROR})


@dataclass(slots=True, frozen=True)
class StreamEvent:
    """A single lifecycle event.

    Attributes:
        kind: Event type
        status: Status code (headers/response)
        headers: Lower-cased response headers (headers)
        type: Classified content-type tag (type)
        url: Final URL after redirects (response)
        data: Body chunk (data)
        response: Completed Response, buffered mode only (end)
        error: Terminal failure (error)
        timestamp: When the event was produced (epoch ms)
    """
    kind: StreamEventKind
    status: int | None = None
    headers: Mapping[str, str] | None = None
    type: str | None = None
    url: httpx.URL | None = None
    data: bytes | str | None = None
    response: Response | None = None
    error: RequestError | None = None
    timestamp: float = field(default_factory=lambda: time.time() * 1000)

    def to_dict(self) -> dict[str, object]:
        """Serialize for logging/transport (body data summarized by size)."""
        result: dict[str, object] = {"kind": str(self.kind), "timestamp": self.timestamp}
        if self.status is not None:
            result["status"] = self.status
        if self.headers is not None:
            result["headers"] = dict(self.headers)
        if self.type is not None:
            result["type"] = self.type
        if self.url is not None:
            result["url"] = str(self.url)
        if self.data is not None:
            result["size"] = len(self.data)
        if self.error is not None:
            result["error"] = self.error.error.model_dump(mode="json")
        return result


# ─────────────────────────────────────────────────────────────────────────────
# Factory Functions
# ─────────────────────────────────────────────────────────────────────────────

def headers_event(status: int, headers: Mapping[str, str]) -> StreamEvent:
    return StreamEvent(kind=StreamEventKind.HEADERS, status=status, headers=headers)


def type_event(tag: str) -> StreamEvent:
    return StreamEvent(kind=StreamEventKind.TYPE, type=tag)


def response_event(status: int, url: httpx.URL) -> StreamEvent:
    return StreamEvent(kind=StreamEventKind.RESPONSE, status=status, url=url)


def data_event(data: bytes | str) -> StreamEvent:
    return StreamEvent(kind=StreamEventKind.DATA, data=data)


def end_event(response: Response | None = None) -> StreamEvent:
    return StreamEvent(kind=StreamEventKind.END, response=response)


def close_event() -> StreamEvent:
    return StreamEvent(kind=StreamEventKind.CLOSE)


def error_event(error: RequestError) -> StreamEvent:
    return StreamEvent(kind=StreamEventKind.ERROR, error=error)
