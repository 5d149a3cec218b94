"""Build links that route API calls and streams through a running relay."""

from anirelay.playlist import encode_component
from anirelay.proxy import API_ROUTE, HLS_ROUTE


def api_proxy_url(base_url: str, path: str) -> str:
    """Generate a JSON relay URL for an API path."""
    return f"{base_url.rstrip('/')}{API_ROUTE}?path={encode_component(path)}"


def hls_proxy_url(base_url: str, url: str, referer: str | None = None) -> str:
    """Generate a proxied HLS URL; the referer is only added when given."""
    link = f"{base_url.rstrip('/')}{HLS_ROUTE}?url={encode_component(url)}"
    if referer:
        link += f"&referer={encode_component(referer)}"
    return link
