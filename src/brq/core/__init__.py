"""Core request and response models."""

from .request import (
    Body,
    BytesBody,
    RequestOptions,
    RequestSpec,
    TextBody,
    is_overflow,
    normalize,
    resolve_redirect,
    validate_url,
)
from .response import FormData, Response, parse_form

__all__ = [
    "Body", "BytesBody", "TextBody",
    "RequestOptions", "RequestSpec", "normalize", "is_overflow", "resolve_redirect", "validate_url",
    "Response", "FormData", "parse_form",
]
