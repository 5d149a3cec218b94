"""anirelay CLI - run and poke at the relays from the terminal."""

import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from anirelay import __version__
from anirelay.config import Config, load_config, save_config
from anirelay.errors import ConfigError, RelayError
from anirelay.links import api_proxy_url, hls_proxy_url
from anirelay.models import ProxyRequest, TransportFailure
from anirelay.playlist import rewrite_playlist
from anirelay.proxy import HLS_ROUTE, create_app
from anirelay.upstream import create_session, fetch_upstream

console = Console()


def setup_logging(level: str) -> None:
    """Route all logging through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )
    # Werkzeug logs every request line; keep only its warnings.
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def relay_base_url(config: Config) -> str:
    if config.public_base_url:
        return config.public_base_url.rstrip("/")
    return f"http://{config.host}:{config.port}"


# ===== CLI COMMANDS =====

@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.option("--config-file", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Config file (default: ~/.config/anirelay/config.json)")
@click.pass_context
def main(ctx, version, config_file):
    """anirelay - CORS and HLS relays for anime video hosts."""
    if version:
        console.print(f"anirelay v{__version__}")
        return

    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    try:
        ctx.obj["config"] = load_config(config_file)
    except ConfigError as e:
        raise click.ClickException(str(e))

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command()
@click.option("--host", default=None, help="Interface to bind")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on")
@click.option("--public-url", default=None, help="Public base URL used in rewritten playlists")
@click.option("--debug", is_flag=True, help="Verbose logging and Flask debug mode")
@click.pass_obj
def serve(obj, host: Optional[str], port: Optional[int], public_url: Optional[str], debug: bool):
    """Run the relay server."""
    config: Config = obj["config"]
    overrides = {k: v for k, v in {"host": host, "port": port, "public_base_url": public_url}.items() if v is not None}
    if overrides:
        config = replace(config, **overrides)

    setup_logging("DEBUG" if debug else config.log_level)
    app = create_app(config)

    console.print(f"[green]▶ Relay listening on http://{config.host}:{config.port}[/]")
    console.print(f"[dim]JSON relay → {config.api_base_url}[/]")
    app.run(host=config.host, port=config.port, threaded=True, debug=debug, use_reloader=False)


@main.command()
@click.argument("playlist", type=click.File("r", encoding="utf-8"))
@click.option("--url", "target_url", required=True, help="URL the playlist was fetched from")
@click.option("--referer", default=None, help="Referer to carry forward (default: configured referer)")
@click.option("--proxy-base", default=None, help="Relay HLS endpoint (default: local server)")
@click.pass_obj
def rewrite(obj, playlist, target_url: str, referer: Optional[str], proxy_base: Optional[str]):
    """Rewrite a playlist file the way the relay would."""
    config: Config = obj["config"]
    base = proxy_base or relay_base_url(config) + HLS_ROUTE
    click.echo(rewrite_playlist(playlist.read(), target_url, referer or config.default_referer, base), nl=False)


@main.command()
@click.argument("url")
@click.option("--referer", default=None, help="Referer to present upstream")
@click.option("--range", "range_header", default=None, help="Range header, e.g. bytes=0-1023")
@click.pass_obj
def probe(obj, url: str, referer: Optional[str], range_header: Optional[str]):
    """Fetch URL once with the relay's headers and retry policy."""
    config: Config = obj["config"]
    try:
        proxy_request = ProxyRequest.from_query({"url": url, "referer": referer or ""}, {"Range": range_header or ""})
    except RelayError as e:
        raise click.BadParameter(e.message, param_hint="URL")
    context = proxy_request.upstream_context(config.default_referer, config.default_origin)

    session = create_session(pool_connections=1, pool_maxsize=1)
    result = fetch_upstream(
        session, proxy_request.target_url, context,
        range_header=proxy_request.range_header,
        timeout=config.media_timeout,
        user_agent=config.media_user_agent,
    )

    table = Table(title="Upstream probe", show_header=True, header_style="bold magenta")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("URL", url)
    table.add_row("Attempts", str(result.attempts))

    if isinstance(result, TransportFailure):
        table.add_row("Error", f"[red]{result.message}[/]")
        console.print(table)
        raise SystemExit(1)

    response = result.response
    response.close()
    table.add_row("Status", str(result.status))
    table.add_row("Referer", result.context.referer)
    table.add_row("Origin", result.context.origin)
    table.add_row("Content-Type", response.headers.get("Content-Type", "(none)"))
    table.add_row("Content-Length", response.headers.get("Content-Length", "(none)"))
    if response.headers.get("Content-Range"):
        table.add_row("Content-Range", response.headers["Content-Range"])
    console.print(table)


@main.command()
@click.option("--url", default=None, help="Media or playlist URL")
@click.option("--referer", default=None, help="Referer for the media host")
@click.option("--path", "api_path", default=None, help="API path for the JSON relay")
@click.pass_obj
def link(obj, url: Optional[str], referer: Optional[str], api_path: Optional[str]):
    """Print a relay link for a stream URL or an API path."""
    if bool(url) == bool(api_path):
        raise click.UsageError("Pass exactly one of --url or --path")

    base = relay_base_url(obj["config"])
    if api_path:
        click.echo(api_proxy_url(base, api_path))
    else:
        click.echo(hls_proxy_url(base, url, referer))


@main.command()
@click.option("--show", is_flag=True, help="Show current configuration")
@click.option("--api-base", default=None, help="Set the JSON relay upstream host")
@click.option("--referer", default=None, help="Set the default media referer")
@click.option("--public-url", default=None, help="Set the public base URL")
@click.option("--port", type=int, default=None, help="Set the listen port")
@click.pass_obj
def config(obj, show: bool, api_base: Optional[str], referer: Optional[str],
           public_url: Optional[str], port: Optional[int]):
    """View or edit configuration."""
    if show or not (api_base or referer or public_url or port):
        table = Table(title="Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        for key, value in asdict(obj["config"]).items():
            table.add_row(key, str(value) if value != "" else "(none)")
        console.print(table)
        return

    changes = {}
    if api_base:
        changes["api_base_url"] = api_base.rstrip("/")
    if referer:
        changes["default_referer"] = referer
    if public_url:
        changes["public_base_url"] = public_url
    if port:
        changes["port"] = port

    # Edit what is on disk, not the environment overrides.
    current = load_config(obj["config_file"], environ={})
    path = save_config(replace(current, **changes), obj["config_file"])
    console.print(f"[green]✓ Configuration saved to {path}[/]")
