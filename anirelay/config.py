"""Configuration management for anirelay."""

import json
import logging
import os
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Mapping

from anirelay.errors import ConfigError

log = logging.getLogger(__name__)

APP_NAME = "anirelay"
ENV_PREFIX = "ANIRELAY_"


def _config_home() -> Path:
    """Per-user config root: APPDATA on Windows, XDG_CONFIG_HOME elsewhere. Empty values count as unset."""
    if os.name == "nt":
        return Path(os.environ.get("APPDATA") or Path.home())
    return Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")


def get_config_dir() -> Path:
    return _config_home() / APP_NAME


def get_config_file() -> Path:
    return get_config_dir() / "config.json"


@dataclass(frozen=True)
class Config:
    """Relay configuration, fixed for the lifetime of the process."""
    api_base_url: str = "https://kenjitsu.vercel.app"
    api_user_agent: str = "AniTaro/1.0"
    api_timeout: float = 15.0
    default_referer: str = "https://rapid-cloud.co/"
    default_origin: str = "https://rapid-cloud.co"
    media_user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    media_timeout: float = 30.0
    public_base_url: str = ""
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"


def _coerce(name: str, value: str, default):
    if isinstance(default, (int, float)):
        try:
            return type(default)(value)
        except ValueError:
            raise ConfigError(f"{ENV_PREFIX}{name.upper()}: expected {type(default).__name__}, got {value!r}") from None
    return value


def _read_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        log.warning("Failed to load config from %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        log.warning("Ignoring config file %s: expected a JSON object", path)
        return {}
    known = {f.name for f in fields(Config)}
    return {k: v for k, v in data.items() if k in known}


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> Config:
    """Build the configuration from defaults, the config file and the environment.

    Environment variables win over the file: ``ANIRELAY_API_BASE_URL``
    overrides ``api_base_url`` and so on.
    """
    if environ is None:
        environ = os.environ

    config = Config(**_read_file(path or get_config_file()))

    overrides = {}
    for f in fields(Config):
        raw = environ.get(ENV_PREFIX + f.name.upper())
        if raw is not None:
            overrides[f.name] = _coerce(f.name, raw, f.default)

    return replace(config, **overrides) if overrides else config


def save_config(config: Config, path: Path | None = None) -> Path:
    """Save configuration to file."""
    config_file = path or get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)

    with open(config_file, "w", encoding="utf-8") as f:
        json.dump(asdict(config), f, indent=2)

    return config_file
