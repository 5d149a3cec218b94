"""Generic JSON relay to the catalog API host."""

import json
import logging
from dataclasses import dataclass

import requests

from anirelay.config import Config
from anirelay.errors import MissingParameter
from anirelay.models import FetchResult, Success, TransportFailure
from anirelay.upstream import fetch_api

log = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"

# Browsing pages render an empty grid instead of an error for these.
LISTING_MARKERS = ("/category/", "/genre/", "/recent/")

EMPTY_LISTING = {"animes": [], "currentPage": 1, "hasNextPage": False, "totalPages": 1}


@dataclass(frozen=True)
class ApiReply:
    status: int
    body: str
    content_type: str = JSON_CONTENT_TYPE


def dumps(payload) -> str:
    return json.dumps(payload, separators=(",", ":"))


def error_reply(status: int, message: str) -> ApiReply:
    return ApiReply(status, dumps({"error": message}))


def is_listing_path(path: str) -> bool:
    return any(marker in path for marker in LISTING_MARKERS)


def _embedded_error(text: str):
    """The top-level ``error`` field of a JSON body; ValueError if ``text`` is not JSON."""
    parsed = json.loads(text)
    if isinstance(parsed, dict):
        return parsed.get("error")
    return None


def resolve_api_result(path: str, result: FetchResult) -> ApiReply:
    """Turn an upstream result into the reply sent to the browser.

    Listing paths never fail: any error becomes an empty listing.
    """
    listing = is_listing_path(path)
    empty = ApiReply(200, dumps(EMPTY_LISTING))

    if isinstance(result, TransportFailure):
        log.error("Fetch error for %s: %s", path, result.message)
        return empty if listing else error_reply(502, result.message)

    if not isinstance(result, Success):
        log.error("API returned status: %s", result.status)
        return empty if listing else error_reply(result.status, f"API returned status {result.status}")

    text = (result.body or b"").decode("utf-8", errors="replace")
    try:
        error = _embedded_error(text)
    except ValueError:
        return ApiReply(200, text, "text/plain")

    if error:
        log.error("API returned error: %s", error)
        if listing:
            return empty
    return ApiReply(200, text)


def relay_api(session: requests.Session, config: Config, path: str | None) -> ApiReply:
    """Forward ``GET {api_base_url}{path}`` and normalise the outcome."""
    if not path:
        raise MissingParameter("Missing path parameter")

    target_url = f"{config.api_base_url}{path}"
    log.info("Proxying request to: %s", target_url)

    headers = {
        "Accept": JSON_CONTENT_TYPE,
        "User-Agent": config.api_user_agent,
    }
    result = fetch_api(session, target_url, headers, config.api_timeout)
    return resolve_api_result(path, result)
