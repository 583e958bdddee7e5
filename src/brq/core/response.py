"""Response accessor - the terminal snapshot of a buffered exchange.

The body is kept as it was accumulated: text for textual content types,
bytes otherwise. Views convert on demand.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qsl

import httpx
import orjson
from pydantic import BaseModel, ConfigDict, Field, computed_field

from brq.foundation.errors import DecodeError

from .request import BytesBody, TextBody

FormData = dict[str, str | list[str]]


def parse_form(text: str) -> FormData:
    """Parse urlencoded text; a repeated key collects its values in a list."""
    out: FormData = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        if key not in out:
            out[key] = value
        elif isinstance(current := out[key], list):
            current.append(value)
        else:
            out[key] = [current, value]
    return out


class Response(BaseModel):
    """Completed response of a buffered exchange."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
        revalidate_instances="never",
    )

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict, repr=False)
    type: str = "bin"
    url: httpx.URL
    redirects: int = 0
    body: TextBody | BytesBody = Field(default_factory=lambda: BytesBody(b""), repr=False)

    @computed_field
    @property
    def ok(self) -> bool:
        """Whether the status indicates success (2xx)."""
        return 200 <= self.status_code < 300

    @computed_field
    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400

    @property
    def content_type(self) -> str | None:
        """Content-Type without parameters."""
        ct = self.headers.get("content-type")
        return ct.split(";")[0].strip() if ct else None

    def text(self) -> str:
        if isinstance(self.body, TextBody):
            return self.body.text
        return self.body.data.decode("utf-8", errors="replace")

    def buffer(self) -> bytes:
        return self.body.encode()

    def json(self) -> dict[str, Any]:  # type: ignore[override]
        """Decode the body as a JSON object. An empty body is ``{}``.

        Raises:
            DecodeError: Malformed JSON, or a top-level value that is not an object
        """
        text = self.text().strip()
        if not text:
            return {}
        try:
            body = orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise DecodeError(f"Invalid JSON body: {e}", url=str(self.url)) from e
        if not isinstance(body, dict):
            raise DecodeError("JSON body is a non-object.", url=str(self.url))
        return body

    def form(self) -> FormData:
        return parse_form(self.text())
