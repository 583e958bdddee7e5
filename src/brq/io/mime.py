"""Content-type classification.

Maps short type tags (``json``, ``html``, ``bin``...) to MIME strings and
back, and tells whether a tag denotes textual content. The engine only talks
to the ``MimeLookup`` protocol so a different table can be injected.

Example:
    >>> table = MimeTable()
    >>> table.type_to_mime("json")
    'application/json'
    >>> table.mime_to_ext("text/html; charset=utf-8")
    'html'
    >>> table.is_textual("png")
    False
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Protocol, runtime_checkable


@runtime_checkable
class MimeLookup(Protocol):
    """Protocol for content-type classification tables."""

    def type_to_mime(self, tag: str) -> str: ...
    def mime_to_ext(self, content_type: str | None) -> str: ...
    def is_textual(self, tag: str) -> bool: ...


# tag -> (mime, textual). Order matters: the first tag registered for a MIME
# string is the one returned by mime_to_ext.
_TYPES: dict[str, tuple[str, bool]] = {
    "bin": ("application/octet-stream", False),
    "atom": ("application/atom+xml", True),
    "bmp": ("image/bmp", False),
    "css": ("text/css", True),
    "csv": ("text/csv", True),
    "form": ("application/x-www-form-urlencoded", True),
    "gif": ("image/gif", False),
    "gz": ("application/gzip", False),
    "html": ("text/html", True),
    "ico": ("image/x-icon", False),
    "jpg": ("image/jpeg", False),
    "jpeg": ("image/jpeg", False),
    "js": ("application/javascript", True),
    "mjs": ("application/javascript", True),
    "json": ("application/json", True),
    "log": ("text/plain", True),
    "md": ("text/markdown", True),
    "mp3": ("audio/mpeg", False),
    "mp4": ("video/mp4", False),
    "mpeg": ("video/mpeg", False),
    "ogg": ("application/ogg", False),
    "otf": ("font/otf", False),
    "pdf": ("application/pdf", False),
    "png": ("image/png", False),
    "rdf": ("application/rdf+xml", True),
    "rss": ("application/rss+xml", True),
    "svg": ("image/svg+xml", True),
    "tar": ("application/x-tar", False),
    "ttf": ("font/ttf", False),
    "txt": ("text/plain", True),
    "wasm": ("application/wasm", False),
    "wav": ("audio/wav", False),
    "webm": ("video/webm", False),
    "webp": ("image/webp", False),
    "woff": ("font/woff", False),
    "woff2": ("font/woff2", False),
    "xhtml": ("application/xhtml+xml", True),
    "xml": ("application/xml", True),
    "zip": ("application/zip", False),
}

# Common aliases seen in the wild that should classify like their canonical type
_ALIASES: dict[str, str] = {
    "text/javascript": "js",
    "text/xml": "xml",
    "text/json": "json",
    "application/x-gzip": "gz",
    "application/x-javascript": "js",
}


class MimeTable:
    """Default tag/MIME table.

    Unknown tags resolve to ``application/octet-stream`` unless they already
    look like a MIME string, in which case they pass through unchanged.
    Unknown MIME strings classify as ``bin``, except ``text/*`` and
    ``*+json``/``*+xml`` which classify as ``txt``/``json``/``xml``.
    """

    __slots__ = ("_types", "_exts")

    def __init__(self, types: Mapping[str, tuple[str, bool]] | None = None) -> None:
        table = dict(_TYPES)
        if types:
            table.update(types)
        self._types: Mapping[str, tuple[str, bool]] = MappingProxyType(table)
        exts: dict[str, str] = {}
        for tag, (mime, _) in table.items():
            exts.setdefault(mime, tag)
        for mime, tag in _ALIASES.items():
            exts.setdefault(mime, tag)
        self._exts: Mapping[str, str] = MappingProxyType(exts)

    def type_to_mime(self, tag: str) -> str:
        if "/" in tag:
            return tag
        entry = self._types.get(tag.lower())
        return entry[0] if entry else self._types["bin"][0]

    def mime_to_ext(self, content_type: str | None) -> str:
        if not content_type:
            return "bin"
        mime = content_type.split(";", 1)[0].strip().lower()
        if (tag := self._exts.get(mime)) is not None:
            return tag
        if mime.endswith("+json"):
            return "json"
        if mime.endswith("+xml"):
            return "xml"
        if mime.startswith("text/"):
            return "txt"
        return "bin"

    def is_textual(self, tag: str) -> bool:
        entry = self._types.get(tag)
        return entry[1] if entry else False


_DEFAULT_TABLE: MimeTable | None = None


def default_mime_table() -> MimeTable:
    """Get the shared default table (built once)."""
    global _DEFAULT_TABLE
    if _DEFAULT_TABLE is None:
        _DEFAULT_TABLE = MimeTable()
    return _DEFAULT_TABLE
