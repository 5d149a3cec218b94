"""Playlist and media relay: fetch, rewrite or stream, answer the player."""

import json
import logging

import requests
from flask import Response, stream_with_context

from anirelay.config import Config
from anirelay.models import ProxyRequest, Success, TransportFailure
from anirelay.playlist import HLS_CONTENT_TYPE, decode_playlist, is_playlist, rewrite_playlist
from anirelay.upstream import fetch_upstream

log = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
CHUNK_SIZE = 128 * 1024

FORWARDED_HEADERS = ("Content-Length", "Content-Range")


def _error_reply(message: str) -> Response:
    return Response(json.dumps({"error": message}), status=502, content_type="application/json")


def _read_body(response: requests.Response) -> bytes:
    try:
        return response.content
    finally:
        response.close()


def _stream_body(response: requests.Response):
    try:
        yield from response.iter_content(chunk_size=CHUNK_SIZE)
    finally:
        response.close()


def relay_media(session: requests.Session, config: Config, proxy_request: ProxyRequest,
                proxy_base_url: str) -> Response:
    """Relay one playlist, segment, key or subtitle request."""
    target_url = proxy_request.target_url
    log.info("Proxying M3U8/media request to: %s", target_url)

    context = proxy_request.upstream_context(config.default_referer, config.default_origin)
    result = fetch_upstream(
        session,
        target_url,
        context,
        range_header=proxy_request.range_header,
        timeout=config.media_timeout,
        user_agent=config.media_user_agent,
    )

    if isinstance(result, TransportFailure):
        return _error_reply(result.message)

    upstream = result.response
    content_type = upstream.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE

    if not isinstance(result, Success):
        log.error("Upstream returned %s for %s", result.status, target_url)
        try:
            body = _read_body(upstream)
        except requests.RequestException as e:
            log.error("Reading error body from %s failed: %s", target_url, e)
            return _error_reply(f"Upstream request failed: {e}")
        return Response(body, status=result.status, content_type=content_type)

    if is_playlist(content_type, target_url):
        try:
            text = decode_playlist(_read_body(upstream))
        except requests.RequestException as e:
            log.error("Reading playlist from %s failed: %s", target_url, e)
            return _error_reply(f"Upstream request failed: {e}")
        # Rewritten links carry the original referer, not the retried one.
        rewritten = rewrite_playlist(text, target_url, context.referer, proxy_base_url)
        return Response(rewritten, status=result.status, content_type=HLS_CONTENT_TYPE)

    headers = {name: upstream.headers[name] for name in FORWARDED_HEADERS if upstream.headers.get(name)}
    return Response(
        stream_with_context(_stream_body(upstream)),
        status=result.status,
        headers=headers,
        content_type=content_type,
        direct_passthrough=True,
    )
