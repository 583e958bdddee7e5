"""I/O collaborators: transport adapter, mime lookup, stream events."""

from .mime import MimeLookup, MimeTable, default_mime_table
from .transport import (
    BodyChunk,
    BodyEnd,
    Connection,
    HttpxConnection,
    HttpxTransport,
    ResponseHead,
    Transport,
    TransportEvent,
)

__all__ = [
    "MimeLookup", "MimeTable", "default_mime_table",
    "Transport", "Connection", "TransportEvent", "ResponseHead", "BodyChunk", "BodyEnd",
    "HttpxTransport", "HttpxConnection",
]
