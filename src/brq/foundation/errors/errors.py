"""Standardized error taxonomy for HTTP exchanges.

Every failure surfaced by the engine is a ``RequestError`` subclass carrying a
structured ``RequestFailure`` payload. Uses Pydantic for validation and
serialization of the payload so failures can be logged or shipped as JSON.
"""

from __future__ import annotations

import traceback
from enum import StrEnum
from functools import lru_cache
from typing import Annotated, ClassVar, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


class ErrorCode(StrEnum):
    """Machine-readable error codes for exchange failures.

    Used for programmatic error handling and retry decisions.
    """
    INVALID_CONFIG = "INVALID_CONFIG"
    REDIRECT = "REDIRECT"
    CONTENT_TYPE = "CONTENT_TYPE"
    OVERFLOW = "OVERFLOW"
    TIMEOUT = "TIMEOUT"
    DECODE_ERROR = "DECODE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TLS_ERROR = "TLS_ERROR"
    PROTOCOL_ERROR = "PROTOCOL_ERROR"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


# Flattened pattern -> code mapping, checked in order against "<ExcName> <message>"
_PATTERN_CODES: dict[str, ErrorCode] = {
    "timeout": ErrorCode.TIMEOUT,
    "timed out": ErrorCode.TIMEOUT,
    "ssl": ErrorCode.TLS_ERROR,
    "certificate": ErrorCode.TLS_ERROR,
    "tls": ErrorCode.TLS_ERROR,
    "connect": ErrorCode.NETWORK_ERROR,
    "network": ErrorCode.NETWORK_ERROR,
    "refused": ErrorCode.NETWORK_ERROR,
    "reset": ErrorCode.NETWORK_ERROR,
    "protocol": ErrorCode.PROTOCOL_ERROR,
    "decoding": ErrorCode.PROTOCOL_ERROR,
}
_PATTERN_KEYS = tuple(_PATTERN_CODES.keys())


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    """Cached classification by exception signature."""
    haystack = exc_key.lower()
    for pattern in _PATTERN_KEYS:
        if pattern in haystack:
            return _PATTERN_CODES[pattern]
    return ErrorCode.NETWORK_ERROR


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map a transport exception to an error code via its name and message."""
    return _classify_cached(f"{type(exc).__name__} {exc}")


# Codes worth retrying at the caller's policy level
_RETRYABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.TIMEOUT,
    ErrorCode.NETWORK_ERROR,
})


class RequestFailure(BaseModel):
    """Structured description of a failed exchange.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        recoverable: Whether the same request might succeed if retried
        url: URL of the hop that failed, when known
        details: Optional detailed information (e.g., stack trace)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "Request Failure",
            "examples": [{
                "message": "Too many redirects.",
                "code": "REDIRECT",
                "recoverable": False,
                "url": "http://example.com/loop",
            }],
        },
    )

    message: Annotated[str, Field(min_length=1)]
    code: ErrorCode = ErrorCode.UNKNOWN
    recoverable: bool = False
    url: str | None = None
    details: str | None = Field(default=None, repr=False)

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | BaseException) -> str:
        """Accept exception objects and extract their message."""
        if isinstance(v, BaseException):
            return str(v) or type(v).__name__
        return v

    @computed_field
    @property
    def is_retryable(self) -> bool:
        """Whether a caller-level retry policy should consider this failure."""
        return self.code in _RETRYABLE_CODES

    def render(self) -> str:
        """Single-line description for logs and exception messages."""
        where = f" ({self.url})" if self.url else ""
        return f"[{self.code}] {self.message}{where}"

    __str__ = render


class RequestError(Exception):
    """Base exception for all exchange failures.

    Subclasses fix the error code; the structured payload lives in ``error``.
    """

    code: ClassVar[ErrorCode] = ErrorCode.UNKNOWN
    recoverable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        details: str | None = None,
        code: ErrorCode | None = None,
    ) -> None:
        self.error = RequestFailure(
            message=message,
            code=code or self.code,
            recoverable=self.recoverable,
            url=url,
            details=details,
        )
        super().__init__(message)

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def error_code(self) -> ErrorCode:
        return self.error.code


class ConfigError(RequestError):
    """Request options have the wrong shape or fail URL validation."""

    code = ErrorCode.INVALID_CONFIG


class RedirectError(RequestError):
    """Redirect limit exceeded, or a streamed body cannot be replayed."""

    code = ErrorCode.REDIRECT


class ContentTypeError(RequestError):
    """Response content type does not match the expected one."""

    code = ErrorCode.CONTENT_TYPE


class ResponseOverflowError(RequestError):
    """Declared or received payload size exceeds the configured limit."""

    code = ErrorCode.OVERFLOW


class RequestTimeoutError(RequestError):
    """The exchange deadline passed before completion."""

    code = ErrorCode.TIMEOUT
    recoverable = True


class DecodeError(RequestError):
    """Response body is malformed for the requested view."""

    code = ErrorCode.DECODE_ERROR


class RequestCancelledError(RequestError):
    """The caller aborted the exchange."""

    code = ErrorCode.CANCELLED


class TransportError(RequestError):
    """Failure surfaced by the transport (connection, TLS, protocol)."""

    code = ErrorCode.NETWORK_ERROR
    recoverable = True

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        *,
        url: str | None = None,
        include_trace: bool = False,
    ) -> Self:
        """Wrap a transport exception, classifying it by name and message."""
        details = "".join(traceback.format_exception(exc)) if include_trace else type(exc).__name__
        err = cls(
            str(exc) or type(exc).__name__,
            url=url,
            details=details,
            code=classify_exception(exc),
        )
        err.__cause__ = exc
        return err
