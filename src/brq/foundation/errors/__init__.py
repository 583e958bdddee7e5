"""Unified error handling for brq.

- ErrorCode: Standard error codes for exchange failures
- RequestFailure: Structured, serializable failure payload
- RequestError and subclasses: the exception taxonomy raised to callers
"""

from .errors import (
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
    classify_exception,
)

__all__ = [
    "ErrorCode", "RequestFailure", "RequestError", "classify_exception",
    "ConfigError", "RedirectError", "ContentTypeError", "ResponseOverflowError",
    "RequestTimeoutError", "DecodeError", "TransportError", "RequestCancelledError",
]
