"""Streaming lifecycle events."""

from .stream import (
    StreamEvent,
    StreamEventKind,
    close_event,
    data_event,
    end_event,
    error_event,
    headers_event,
    response_event,
    type_event,
)

__all__ = [
    "StreamEvent", "StreamEventKind",
    "headers_event", "type_event", "response_event", "data_event",
    "end_event", "close_event", "error_event",
]
