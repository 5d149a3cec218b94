"""Request-scoped data models for the relays."""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union
from urllib.parse import urlparse

from anirelay.errors import InvalidParameter, MissingParameter

_DEFAULT_PORTS = {"http": 80, "https": 443}


def origin_of(url: str) -> Optional[str]:
    """Return ``scheme://host[:port]`` for an absolute URL, else None."""
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return None
    if not parsed.scheme or not parsed.hostname:
        return None

    scheme = parsed.scheme.lower()
    host = parsed.hostname
    if ":" in host:
        host = f"[{host}]"
    origin = f"{scheme}://{host}"
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        origin += f":{port}"
    return origin


def _blank(value: Optional[str]) -> bool:
    # The player sends the literal "undefined" when it has no value.
    return value is None or not value.strip() or value == "undefined"


@dataclass(frozen=True)
class UpstreamContext:
    """Referer/Origin pair presented to an upstream host."""
    referer: str
    origin: str

    @classmethod
    def from_referer(cls, referer: str, fallback_origin: str) -> "UpstreamContext":
        return cls(referer=referer, origin=origin_of(referer) or fallback_origin)


@dataclass(frozen=True)
class ProxyRequest:
    """An inbound media/playlist relay request."""
    target_url: str
    referer_override: Optional[str] = None
    range_header: Optional[str] = None
    method: str = "GET"

    @classmethod
    def from_query(cls, args: Mapping[str, str], headers: Mapping[str, str]) -> "ProxyRequest":
        target_url = args.get("url")
        if _blank(target_url):
            raise MissingParameter("Missing url parameter")
        target_url = target_url.strip()
        if origin_of(target_url) is None:
            raise InvalidParameter(f"Invalid url parameter: {target_url}")

        referer = args.get("referer")
        return cls(
            target_url=target_url,
            referer_override=None if _blank(referer) else referer,
            range_header=headers.get("Range") or None,
        )

    def upstream_context(self, default_referer: str, default_origin: str) -> UpstreamContext:
        return UpstreamContext.from_referer(self.referer_override or default_referer, default_origin)


# ===== PLAYLIST LINES =====

@dataclass(frozen=True)
class Comment:
    """A ``#`` directive or comment line."""
    text: str


@dataclass(frozen=True)
class Blank:
    text: str


@dataclass(frozen=True)
class Reference:
    """A line pointing at another playlist, segment, key or subtitle file."""
    text: str

    @property
    def value(self) -> str:
        return self.text.strip()


@dataclass(frozen=True)
class Opaque:
    """A non-comment line that does not look like a URL; never rewritten."""
    text: str


PlaylistLine = Union[Comment, Blank, Reference, Opaque]


# ===== FETCH RESULTS =====

@dataclass(frozen=True)
class Success:
    """Upstream answered with a 2xx status."""
    response: Any
    attempts: int
    context: Optional[UpstreamContext] = None
    body: Optional[bytes] = None

    @property
    def status(self) -> int:
        return self.response.status_code


@dataclass(frozen=True)
class UpstreamRejected:
    """Upstream answered with a non-2xx status."""
    response: Any
    attempts: int
    context: Optional[UpstreamContext] = None
    body: Optional[bytes] = None

    @property
    def status(self) -> int:
        return self.response.status_code


@dataclass(frozen=True)
class TransportFailure:
    """No usable answer: DNS, connection or timeout error."""
    cause: Exception
    attempts: int
    timed_out: bool = False

    @property
    def message(self) -> str:
        if self.timed_out:
            return f"Upstream request timed out: {self.cause}"
        return f"Upstream request failed: {self.cause}"


FetchResult = Union[Success, UpstreamRejected, TransportFailure]
