"""Request normalization - loosely typed caller input to a canonical RequestSpec.

Callers describe a request with a string URL or a mapping of options
(``method``, ``url``, ``headers``, ``json``, ``form``, ``body``, ``expect``,
``limit``, ``timeout``, ``maxRedirects``...). ``normalize`` validates the
shape of those options with Pydantic, applies them in a fixed later-wins
order, and produces an immutable ``RequestSpec`` whose URL carries neither
credentials nor a fragment.

Example:
    >>> spec = normalize("user:pw@example.com/items?page=2")
    >>> str(spec.url), spec.username
    ('http://example.com/items?page=2', 'user')

    >>> spec = normalize({"url": "https://api.example.com", "json": {"a": 1}}, buffer=True)
    >>> spec.type, spec.body
    ('json', TextBody(text='{"a":1}'))
"""

from __future__ import annotations

import base64
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any, TypeAlias
from urllib.parse import quote, urlencode

import httpx
import orjson
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictBytes,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)

from brq.foundation.config import HttpSettings, get_settings
from brq.foundation.errors import ConfigError

if TYPE_CHECKING:
    from brq.io.mime import MimeLookup


# ─────────────────────────────────────────────────────────────────────────────
# Body
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TextBody:
    """Text payload, sent as UTF-8."""
    text: str

    def encode(self) -> bytes:
        return self.text.encode("utf-8")

    def __len__(self) -> int:
        """Length in bytes on the wire."""
        return len(self.encode())


@dataclass(frozen=True)
class BytesBody:
    """Raw byte payload."""
    data: bytes

    def encode(self) -> bytes:
        return self.data

    def __len__(self) -> int:
        return len(self.data)


Body: TypeAlias = TextBody | BytesBody


# ─────────────────────────────────────────────────────────────────────────────
# Overflow pre-check
# ─────────────────────────────────────────────────────────────────────────────

_DIGITS = re.compile(r"[0-9]+")

# Longer digit strings are treated as overflowing without parsing
_MAX_LENGTH_DIGITS = 15


def is_overflow(header: str | None, limit: int) -> bool:
    """Whether a Content-Length header value declares more than ``limit`` bytes.

    Malformed values are not considered overflowing (the live byte count is
    the real enforcement); absurdly long digit strings always are.
    """
    if header is None:
        return False
    value = header.strip()
    if not _DIGITS.fullmatch(value):
        return False
    value = value.lstrip("0") or "0"
    if len(value) > _MAX_LENGTH_DIGITS:
        return True
    return int(value) > limit


# ─────────────────────────────────────────────────────────────────────────────
# Caller Options
# ─────────────────────────────────────────────────────────────────────────────

Port = Annotated[StrictInt, Field(ge=1, le=0xFFFF)]
NonNegativeStrictInt = Annotated[StrictInt, Field(ge=0)]
Millis = Annotated[StrictInt, Field(ge=0)] | Annotated[StrictFloat, Field(ge=0)]


class RequestOptions(BaseModel):
    """Shape validation for caller-supplied request options.

    Every field is optional; ``None`` means "not given". Only shapes are
    checked here - ``normalize`` applies the values in order.
    """

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        arbitrary_types_allowed=True,
        frozen=True,
    )

    method: StrictStr | None = None
    uri: StrictStr | httpx.URL | None = None
    url: StrictStr | httpx.URL | None = None
    ssl: StrictBool | None = None
    host: StrictStr | None = None
    port: Port | None = None
    path: StrictStr | None = None
    query: StrictStr | Mapping[str, Any] | None = None
    username: StrictStr | None = None
    password: StrictStr | None = None
    strict_ssl: StrictBool | None = Field(default=None, alias="strictSSL")
    agent: StrictStr | None = None
    json_body: dict[str, Any] | list[Any] | None = Field(default=None, alias="json")
    form: Mapping[str, Any] | None = None
    type: StrictStr | None = None
    expect: StrictStr | None = None
    body: StrictStr | StrictBytes | None = None
    timeout: Millis | None = None
    limit: NonNegativeStrictInt | None = None
    max_redirects: NonNegativeStrictInt | None = Field(default=None, alias="maxRedirects")
    headers: dict[StrictStr, StrictStr] | None = None

    @field_validator("method")
    @classmethod
    def _token(cls, v: str | None) -> str | None:
        if v is not None and not re.fullmatch(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+", v):
            raise ValueError("method must be an HTTP token")
        return v


def _summarize(exc: ValidationError) -> str:
    """Collapse a ValidationError into a single readable line."""
    parts = [f"{'.'.join(str(p) for p in err['loc']) or 'options'}: {err['msg']}" for err in exc.errors()]
    return "Invalid request options: " + "; ".join(parts)


# ─────────────────────────────────────────────────────────────────────────────
# RequestSpec
# ─────────────────────────────────────────────────────────────────────────────

_DEFAULT_URL = httpx.URL("http://localhost/")


class RequestSpec(BaseModel):
    """Canonical, validated description of one logical request.

    Immutable; a redirect produces a new spec through ``with_url``.

    Attributes:
        method: Uppercase HTTP method
        url: Target URL without credentials or fragment
        username: Basic-auth user (from URL userinfo or options)
        password: Basic-auth password
        headers: Caller headers, merged under the derived ones on send
        agent: User-Agent value, if any
        body: Outbound payload
        type: Logical content-type tag of the body
        expect: Tag the response must classify as, if set
        limit: Max buffered payload bytes (0 = unlimited)
        timeout: Whole-exchange deadline in ms (0 = none)
        max_redirects: Max redirect hops
        buffer: Accumulate the body (True) or stream it (False)
        strict_ssl: Verify TLS certificates
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
        revalidate_instances="never",
    )

    method: str = "GET"
    url: httpx.URL = _DEFAULT_URL
    username: str = ""
    password: str = Field(default="", repr=False)
    headers: dict[str, str] = Field(default_factory=dict, repr=False)
    agent: str | None = None
    body: TextBody | BytesBody | None = Field(default=None, repr=False)
    type: str | None = None
    expect: str | None = None
    limit: int = 20 << 20
    timeout: float = 0.0
    max_redirects: int = 5
    buffer: bool = False
    strict_ssl: bool = True

    def with_url(self, url: httpx.URL) -> RequestSpec:
        """New spec targeting ``url``; everything else unchanged."""
        return self.model_copy(update={"url": url})

    def is_expected(self, tag: str) -> bool:
        return not self.expect or self.expect == tag

    def is_overflow(self, header: str | None) -> bool:
        """Content-Length pre-check; only meaningful when buffering with a limit."""
        if not self.buffer or not self.limit:
            return False
        return is_overflow(header, self.limit)

    def build_headers(self, mime: MimeLookup) -> dict[str, str]:
        """Derived headers followed by caller headers.

        A caller header that names a derived header (case-insensitively) is
        dropped so the derived value is the only one sent.
        """
        derived: dict[str, str] = {}
        if self.agent:
            derived["User-Agent"] = self.agent
        if self.type:
            derived["Content-Type"] = mime.type_to_mime(self.type)
        if self.body is not None and self.buffer:
            derived["Content-Length"] = str(len(self.body))
        if self.username or self.password:
            token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode("ascii")
            derived["Authorization"] = f"Basic {token}"
        taken = {name.lower() for name in derived}
        return {**derived, **{k: v for k, v in self.headers.items() if k.lower() not in taken}}


# ─────────────────────────────────────────────────────────────────────────────
# URL helpers
# ─────────────────────────────────────────────────────────────────────────────

def _parse_url(raw: str | httpx.URL) -> httpx.URL:
    if isinstance(raw, httpx.URL):
        return raw
    if "://" not in raw:
        raw = "http://" + raw
    try:
        return httpx.URL(raw)
    except httpx.InvalidURL as e:
        raise ConfigError(f"Invalid URL: {e}") from e


def _strip_credentials(url: httpx.URL) -> tuple[httpx.URL, str, str]:
    """Split userinfo out of ``url`` and drop the fragment."""
    username, password = url.username, url.password
    return url.copy_with(userinfo=b"", fragment=None), username, password


def validate_url(url: httpx.URL) -> httpx.URL:
    """Enforce the http/https and non-zero port invariants."""
    if url.scheme not in ("http", "https"):
        raise ConfigError("Invalid URL protocol.", url=str(url))
    if url.port == 0:
        raise ConfigError("Invalid URL port.", url=str(url))
    if not url.host:
        raise ConfigError("URL has no host.", url=str(url))
    return url


def resolve_redirect(current: httpx.URL, location: str) -> httpx.URL:
    """Resolve a Location header against the current URL.

    Returns a new URL without credentials or fragment; raises ConfigError if
    the target is malformed or not http/https.
    """
    try:
        target = current.join(location.strip())
    except httpx.InvalidURL as e:
        raise ConfigError(f"Invalid redirect location: {e}", url=str(current)) from e
    target, _, _ = _strip_credentials(target)
    return validate_url(target)


def _encode_query(query: str | Mapping[str, Any]) -> bytes | None:
    if isinstance(query, str):
        text = query[1:] if query.startswith("?") else query
    else:
        text = urlencode(query, doseq=True)
    if not text:
        return None
    return quote(text, safe="/?:@!$&'()*+,;=%~").encode("ascii")


# ─────────────────────────────────────────────────────────────────────────────
# Normalizer
# ─────────────────────────────────────────────────────────────────────────────

def normalize(
    options: str | httpx.URL | Mapping[str, Any],
    buffer: bool = False,
    *,
    settings: HttpSettings | None = None,
) -> RequestSpec:
    """Turn caller options into a canonical RequestSpec.

    Args:
        options: URL string, ``httpx.URL``, or a mapping of request options
        buffer: Whether the exchange will accumulate the response body
        settings: Defaults for unset fields (global settings if omitted)

    Returns:
        Validated RequestSpec

    Raises:
        ConfigError: Options have the wrong shape or the URL is invalid
    """
    defaults = settings or get_settings().http

    if isinstance(options, (str, httpx.URL)):
        options = {"url": options}
    if not isinstance(options, Mapping):
        raise ConfigError(f"Request options must be a string or mapping, not {type(options).__name__}.")

    try:
        opts = RequestOptions.model_validate(dict(options))
    except ValidationError as e:
        raise ConfigError(_summarize(e)) from e

    method = opts.method.upper() if opts.method is not None else "GET"
    url, username, password = _DEFAULT_URL, "", ""

    try:
        for raw in (opts.uri, opts.url):
            if raw is not None:
                url, username, password = _strip_credentials(_parse_url(raw))

        if opts.ssl is not None:
            url = url.copy_with(scheme="https" if opts.ssl else "http")
        if opts.host is not None:
            host = opts.host
            url = url.copy_with(host=f"[{host}]" if ":" in host and not host.startswith("[") else host)
        if opts.port is not None:
            url = url.copy_with(port=opts.port)
        if opts.path is not None:
            url = url.copy_with(path=opts.path if opts.path.startswith("/") else "/" + opts.path)
        if opts.query is not None:
            url = url.copy_with(query=_encode_query(opts.query))
    except httpx.InvalidURL as e:
        raise ConfigError(f"Invalid URL: {e}") from e

    if opts.username is not None:
        username = opts.username
    if opts.password is not None:
        password = opts.password

    body: Body | None = None
    type_tag: str | None = None
    if opts.json_body is not None:
        try:
            body = TextBody(orjson.dumps(opts.json_body).decode("utf-8"))
        except orjson.JSONEncodeError as e:
            raise ConfigError(f"Cannot serialize json option: {e}") from e
        type_tag = "json"
    if opts.form is not None:
        body = TextBody(urlencode(opts.form, doseq=True))
        type_tag = "form"
    if opts.type is not None:
        type_tag = opts.type
    if opts.body is not None:
        body = TextBody(opts.body) if isinstance(opts.body, str) else BytesBody(opts.body)

    return RequestSpec(
        method=method,
        url=validate_url(url),
        username=username,
        password=password,
        headers=dict(opts.headers) if opts.headers else {},
        agent=opts.agent if opts.agent is not None else defaults.user_agent,
        body=body,
        type=type_tag,
        expect=opts.expect,
        limit=opts.limit if opts.limit is not None else defaults.limit_bytes,
        timeout=float(opts.timeout) if opts.timeout is not None else defaults.timeout,
        max_redirects=opts.max_redirects if opts.max_redirects is not None else defaults.max_redirects,
        buffer=buffer,
        strict_ssl=opts.strict_ssl if opts.strict_ssl is not None else defaults.strict_ssl,
    )
