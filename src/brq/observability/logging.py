"""Structured key/value logging for request execution.

Every entry is an event name plus merged context: the logger's bound fields
(logger name, method, buffer mode), any scoped ``log_context`` fields, and the
call's own fields (url, status, error code...). Output goes through a
pluggable renderer: console lines for development, JSON lines for
aggregation, or nothing.

Quick Start:
    >>> from brq.observability import configure_logging, get_logger
    >>> configure_logging(format="console", level="DEBUG")
    >>> log = get_logger("brq.exchange").bind(method="GET")
    >>> log.debug("exchange started", url="http://example.com/")
"""

from __future__ import annotations

import logging
import sys
import time
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import partialmethod
from typing import TYPE_CHECKING, Any, Protocol, TextIO, runtime_checkable

import orjson

if TYPE_CHECKING:
    from brq.foundation.config import LoggingSettings

Fields = dict[str, Any]

_scoped: ContextVar[Fields] = ContextVar("brq_log_scope", default={})


@dataclass(slots=True, frozen=True)
class LogEntry:
    """One rendered event."""

    timestamp: float
    level: int
    event: str
    fields: Fields

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level).lower()

    @property
    def iso_time(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=UTC).isoformat()

    def as_dict(self) -> Fields:
        return {"timestamp": self.iso_time, "level": self.level_name, "event": self.event, **self.fields}


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


@runtime_checkable
class LogRenderer(Protocol):
    def render(self, entry: LogEntry) -> None: ...


_ANSI = {
    logging.DEBUG: "\033[2m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
}
_RESET = "\033[0m"


def _console_value(value: object) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, str):
        return f'"{value}"' if (not value or " " in value) else value
    return repr(value) if isinstance(value, (bytes, tuple, list, dict)) else str(value)


@dataclass(slots=True)
class ConsoleRenderer:
    """``HH:MM:SS.mmm [level] event key=value ...`` on a text stream."""

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None

    def __post_init__(self) -> None:
        if self.colors is None:
            isatty = getattr(self.output, "isatty", None)
            self.colors = bool(isatty and isatty())

    def render(self, entry: LogEntry) -> None:
        stamp = datetime.fromtimestamp(entry.timestamp, tz=UTC).strftime("%H:%M:%S.%f")[:-3]
        level = f"[{entry.level_name}]"
        if self.colors:
            level = f"{_ANSI.get(entry.level, '')}{level}{_RESET}"
        trace = entry.fields.get("exc_info")
        pairs = " ".join(f"{k}={_console_value(v)}" for k, v in sorted(entry.fields.items()) if k != "exc_info")
        print(f"{stamp} {level} {entry.event}" + (f" {pairs}" if pairs else ""), file=self.output)
        if trace:
            print(trace, file=self.output, end="" if str(trace).endswith("\n") else "\n")


@dataclass(slots=True)
class JsonRenderer:
    """One JSON object per line."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        self.output.write(orjson.dumps(entry.as_dict(), default=str, option=orjson.OPT_APPEND_NEWLINE).decode())


class NoOpRenderer:
    def render(self, entry: LogEntry) -> None:
        return None


# ─────────────────────────────────────────────────────────────────────────────
# Process-wide Configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class _Config:
    renderer: LogRenderer | None = None
    level: int = logging.INFO


_config = _Config()


def configure_logging(
    format: str = "console",  # noqa: A002
    level: str = "INFO",
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
) -> LogRenderer:
    """Select the renderer ("console", "json" or "none") and the minimum level."""
    match format:
        case "console":
            renderer: LogRenderer = ConsoleRenderer(output=output or sys.stderr, colors=colors)
        case "json":
            renderer = JsonRenderer(output=output or sys.stdout)
        case "none":
            renderer = NoOpRenderer()
        case _:
            raise ValueError(f"Unknown format: {format}. Use 'console', 'json', or 'none'")
    _config.renderer = renderer
    resolved = logging.getLevelName(level.upper())
    _config.level = resolved if isinstance(resolved, int) else logging.INFO
    return renderer


def configure_from_settings(settings: LoggingSettings, *, output: TextIO | None = None) -> LogRenderer:
    """Apply ``BRQ_LOG_*`` settings."""
    return configure_logging(settings.format, settings.level, output=output, colors=settings.colors)


# ─────────────────────────────────────────────────────────────────────────────
# Logger
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class BoundLogger:
    """Logger carrying bound fields. ``bind`` returns a new logger."""

    context: Fields = field(default_factory=dict)
    renderer: LogRenderer | None = None

    def bind(self, **fields: Any) -> BoundLogger:
        return BoundLogger({**self.context, **fields}, self.renderer)

    def unbind(self, *keys: str) -> BoundLogger:
        return BoundLogger({k: v for k, v in self.context.items() if k not in keys}, self.renderer)

    def is_enabled_for(self, level: int) -> bool:
        return level >= _config.level

    def log(self, level: int, event: str, **fields: Any) -> None:
        if level < _config.level:
            return
        renderer = self.renderer or _config.renderer
        if renderer is None:
            renderer = _config.renderer = ConsoleRenderer()
        renderer.render(LogEntry(time.time(), level, event, {**_scoped.get(), **self.context, **fields}))

    debug = partialmethod(log, logging.DEBUG)
    info = partialmethod(log, logging.INFO)
    warning = partialmethod(log, logging.WARNING)
    error = partialmethod(log, logging.ERROR)

    def exception(self, event: str, **fields: Any) -> None:
        """Error entry with the active traceback attached as ``exc_info``."""
        self.log(logging.ERROR, event, exc_info=traceback.format_exc(), **fields)


def get_logger(name: str | None = None, **fields: Any) -> BoundLogger:
    """Logger with ``logger=name`` bound, plus any extra fields."""
    return BoundLogger({**fields, "logger": name} if name else dict(fields))


@contextmanager
def log_context(**fields: Any) -> Iterator[Fields]:
    """Add fields to every entry logged inside the block (task-local)."""
    token = _scoped.set({**_scoped.get(), **fields})
    try:
        yield fields
    finally:
        _scoped.reset(token)
