"""Flask application exposing the JSON relay and the HLS relay."""

import json
import logging

import requests
from flask import Flask, Response, current_app, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from anirelay import __version__
from anirelay.api import relay_api
from anirelay.config import Config, load_config
from anirelay.errors import RelayError
from anirelay.media import relay_media
from anirelay.models import ProxyRequest
from anirelay.upstream import create_session

log = logging.getLogger(__name__)

API_ROUTE = "/api/proxy"
HLS_ROUTE = "/api/hls"

CORS_ALLOW_HEADERS = [
    "authorization",
    "x-client-info",
    "apikey",
    "content-type",
    "range",
    "x-supabase-client-platform",
    "x-supabase-client-platform-version",
    "x-supabase-client-runtime",
    "x-supabase-client-runtime-version",
]
CORS_METHODS = ["GET", "OPTIONS"]
CORS_EXPOSE_HEADERS = ["Content-Length", "Content-Range"]


def _json_response(payload: dict, status: int) -> Response:
    return Response(json.dumps(payload), status=status, content_type="application/json")


def _relay_config() -> Config:
    return current_app.config["RELAY_CONFIG"]


def _relay_session() -> requests.Session:
    return current_app.extensions["anirelay.session"]


def proxy_base_url() -> str:
    """Public URL of the current endpoint, used in rewritten playlists.

    A configured ``public_base_url`` wins over forwarded or Host headers,
    which some platforms point at internal hostnames.
    """
    public = _relay_config().public_base_url
    if public:
        return public.rstrip("/") + request.path
    proto = request.headers.get("X-Forwarded-Proto") or request.scheme
    host = request.headers.get("X-Forwarded-Host") or request.host
    return f"{proto}://{host}{request.script_root}{request.path}"


def api_proxy():
    reply = relay_api(_relay_session(), _relay_config(), request.args.get("path"))
    return Response(reply.body, status=reply.status, content_type=reply.content_type)


def hls_proxy():
    proxy_request = ProxyRequest.from_query(request.args, request.headers)
    return relay_media(_relay_session(), _relay_config(), proxy_request, proxy_base_url())


def index():
    return _json_response({
        "service": "anirelay",
        "version": __version__,
        "routes": [API_ROUTE, HLS_ROUTE],
    }, 200)


def add_cors_headers(response: Response) -> Response:
    """Send the full allow-list on every response, preflight or not."""
    response.headers["Access-Control-Allow-Methods"] = ", ".join(CORS_METHODS)
    response.headers["Access-Control-Allow-Headers"] = ", ".join(CORS_ALLOW_HEADERS)
    return response


def handle_relay_error(e: RelayError):
    log.warning("Rejected %s: %s", request.full_path, e.message)
    return _json_response({"error": e.message}, e.status_code)


def handle_exception(e: Exception):
    if isinstance(e, HTTPException):
        return _json_response({"error": e.description}, e.code or 500)
    log.exception("Proxy error on %s", request.full_path)
    return _json_response({"error": str(e) or "Proxy request failed"}, 500)


def create_app(config: Config | None = None, session: requests.Session | None = None) -> Flask:
    """Build the relay application.

    Configuration and the upstream session are fixed here for the life of
    the app; requests share nothing else.
    """
    app = Flask(__name__)
    app.config["RELAY_CONFIG"] = config or load_config()
    app.extensions["anirelay.session"] = session or create_session()

    # after_request hooks run in reverse order, so this one sees flask-cors output.
    app.after_request(add_cors_headers)
    CORS(
        app,
        origins="*",
        send_wildcard=True,
        methods=CORS_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
        expose_headers=CORS_EXPOSE_HEADERS,
    )

    app.add_url_rule("/", "index", index, methods=["GET"])
    app.add_url_rule(API_ROUTE, "api_proxy", api_proxy, methods=["GET"])
    app.add_url_rule(HLS_ROUTE, "hls_proxy", hls_proxy, methods=["GET"])

    app.register_error_handler(RelayError, handle_relay_error)
    app.register_error_handler(Exception, handle_exception)
    return app
