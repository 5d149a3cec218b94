"""HLS playlist parsing and URL rewriting."""

import re
from urllib.parse import quote

from anirelay.models import Blank, Comment, Opaque, PlaylistLine, Reference

HLS_CONTENT_TYPE = "application/vnd.apple.mpegurl"

MEDIA_EXTENSIONS = (".m3u8", ".ts", ".key", ".vtt", ".aac", ".mp4")

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)

# Characters left alone by JavaScript's encodeURIComponent.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def is_playlist(content_type: str, target_url: str) -> bool:
    """Whether an upstream response should be treated as an HLS playlist."""
    content_type = (content_type or "").lower()
    return "mpegurl" in content_type or "m3u8" in content_type or target_url.endswith(".m3u8")


def decode_playlist(body: bytes) -> str:
    return body.decode("utf-8-sig", errors="replace")


def classify_line(line: str) -> PlaylistLine:
    """Classify one playlist line (without its line terminator).

    A line counts as a reference when it mentions a known media extension
    or contains a ``/``. Anything else is left untouched so directive
    arguments are never mangled.
    """
    trimmed = line.strip()
    if not trimmed:
        return Blank(line)
    if trimmed.startswith("#"):
        return Comment(line)
    if "/" in trimmed or any(ext in trimmed for ext in MEDIA_EXTENSIONS):
        return Reference(line)
    return Opaque(line)


def _split_terminator(raw: str) -> tuple[str, str]:
    if raw.endswith("\r"):
        return raw[:-1], "\r"
    return raw, ""


def parse_playlist(text: str) -> list[PlaylistLine]:
    return [classify_line(_split_terminator(raw)[0]) for raw in text.split("\n")]


def playlist_base_url(target_url: str) -> str:
    """The playlist URL up to and including its last ``/``."""
    return target_url[:target_url.rfind("/") + 1]


def resolve_reference(value: str, base_url: str) -> str:
    if _SCHEME_RE.match(value):
        return value
    return base_url + value


def proxied_url(proxy_base_url: str, absolute_url: str, referer: str) -> str:
    """Route ``absolute_url`` back through the relay, carrying the referer forward."""
    return f"{proxy_base_url}?url={encode_component(absolute_url)}&referer={encode_component(referer)}"


def rewrite_line(line: PlaylistLine, base_url: str, referer: str, proxy_base_url: str) -> str:
    if isinstance(line, Reference):
        return proxied_url(proxy_base_url, resolve_reference(line.value, base_url), referer)
    return line.text


def rewrite_playlist(body: str, target_url: str, referer: str, proxy_base_url: str) -> str:
    """Rewrite every segment, key and variant reference in ``body`` to go through the relay.

    Comment, blank and opaque lines come out byte-identical, and line
    terminators (``\\n`` or ``\\r\\n``) are preserved.
    """
    base_url = playlist_base_url(target_url)
    out = []
    for raw in body.split("\n"):
        content, terminator = _split_terminator(raw)
        out.append(rewrite_line(classify_line(content), base_url, referer, proxy_base_url) + terminator)
    return "\n".join(out)
