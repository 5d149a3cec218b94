"""Outbound HTTP requests to third-party hosts."""

import logging
import threading
import time
from typing import Optional

import requests

from anirelay.models import (
    FetchResult, Success, TransportFailure, UpstreamContext, UpstreamRejected, origin_of,
)

log = logging.getLogger(__name__)

BROWSER_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


def create_session(pool_connections: int = 20, pool_maxsize: int = 100) -> requests.Session:
    """Pooled session shared by all requests of one app."""
    session = requests.Session()
    adapter = requests.adapters.HTTPAdapter(pool_connections=pool_connections, pool_maxsize=pool_maxsize)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def build_headers(context: UpstreamContext, range_header: Optional[str] = None,
                  user_agent: str = BROWSER_USER_AGENT) -> dict[str, str]:
    """Browser-like request headers for one upstream attempt."""
    headers = {
        "User-Agent": user_agent,
        "Accept": "*/*",
        "Accept-Language": "en-US,en;q=0.9",
        # Content-Length is relayed as-is, so the body must not be re-encoded.
        "Accept-Encoding": "identity",
        "Referer": context.referer,
        "Origin": context.origin,
    }
    if range_header:
        headers["Range"] = range_header
    return headers


def _classify(response: requests.Response, attempts: int, context: Optional[UpstreamContext] = None,
              body: Optional[bytes] = None) -> FetchResult:
    if 200 <= response.status_code < 300:
        return Success(response, attempts, context, body)
    return UpstreamRejected(response, attempts, context, body)


def _failure(exc: requests.RequestException, attempts: int) -> TransportFailure:
    return TransportFailure(exc, attempts, timed_out=isinstance(exc, requests.Timeout))


def fetch_upstream(
    session: requests.Session,
    target_url: str,
    context: UpstreamContext,
    range_header: Optional[str] = None,
    timeout: Optional[float] = None,
    user_agent: str = BROWSER_USER_AGENT,
) -> FetchResult:
    """GET a media or playlist URL, retrying once on 403 with the target's own origin.

    The retry only happens when the target origin differs from the origin
    sent on the first attempt; any other status or error is returned as is.
    The response body is left unread (``stream=True``).
    """
    def attempt(ctx: UpstreamContext) -> requests.Response:
        return session.get(
            target_url,
            headers=build_headers(ctx, range_header, user_agent),
            stream=True,
            timeout=timeout,
        )

    try:
        response = attempt(context)
    except requests.RequestException as e:
        log.error("Upstream request to %s failed: %s", target_url, e)
        return _failure(e, 1)

    target_origin = origin_of(target_url)
    if response.status_code != 403 or not target_origin or target_origin == context.origin:
        return _classify(response, 1, context)

    log.info("Upstream returned 403 for %s, retrying with origin %s", target_url, target_origin)
    response.close()
    retry_context = UpstreamContext(referer=target_origin, origin=target_origin)
    try:
        response = attempt(retry_context)
    except requests.RequestException as e:
        log.error("Retry to %s failed: %s", target_url, e)
        return _failure(e, 2)
    return _classify(response, 2, retry_context)


def _cut_off(response: requests.Response) -> None:
    """Stop a body read running on another thread; the reader sees EOF."""
    try:
        response.raw.shutdown()
    except (AttributeError, ValueError, RuntimeError) as e:
        log.debug("Closing %s instead of shutting it down: %s", response.url, e)
        response.close()


def fetch_api(session: requests.Session, url: str, headers: dict[str, str], timeout: float) -> FetchResult:
    """Single GET whose connect, headers and body must all complete within ``timeout`` seconds.

    requests bounds the connect and the wait for headers; headers that
    arrive past the deadline are refused, and a timer shuts the socket when
    the deadline falls mid-body. The body is fully read and returned on the
    result.
    """
    deadline = time.monotonic() + timeout
    try:
        response = session.get(url, headers=headers, stream=True, timeout=timeout)
        try:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise requests.Timeout(f"{url} timed out after {timeout:g}s waiting for headers")
            timer = threading.Timer(remaining, _cut_off, args=(response,))
            timer.daemon = True
            timer.start()
            try:
                body = b"".join(response.iter_content(chunk_size=64 * 1024))
            except requests.RequestException:
                if time.monotonic() < deadline:
                    raise
                body = None
            finally:
                timer.cancel()
            if body is None or time.monotonic() >= deadline:
                raise requests.Timeout(f"{url} timed out after {timeout:g}s reading the body")
        finally:
            response.close()
    except requests.RequestException as e:
        return _failure(e, 1)
    return _classify(response, 1, body=body)
