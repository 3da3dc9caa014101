"""Configuration loading for the S2 dashboard."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.config/s2/config.yaml"
DEFAULT_ACCOUNT_ENDPOINT = "https://aws.s2.dev/v1"
DEFAULT_BASIN_ENDPOINT = "https://{basin}.b.aws.s2.dev/v1"
DEFAULT_LOG_FILE = "/tmp/s2tui/s2tui.log"


class ConfigError(Exception):
    """Configuration is missing or unusable."""


@dataclass
class Settings:
    """Resolved settings for one dashboard run."""
    access_token: str
    account_endpoint: str = DEFAULT_ACCOUNT_ENDPOINT
    basin_endpoint: str = DEFAULT_BASIN_ENDPOINT
    request_timeout: float = 10.0
    poll_interval: float = 0.05
    splash_duration: float = 1.2
    log_level: str = "INFO"
    log_file: str = DEFAULT_LOG_FILE


def load_config(config_path: Optional[str] = None) -> dict:
    """Load configuration from YAML file."""
    config_path = config_path or os.environ.get("S2_CONFIG_PATH") or DEFAULT_CONFIG_PATH
    path = Path(config_path).expanduser()

    if not path.exists():
        logger.warning(f"Config file not found: {path}, using defaults")
        return {}

    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def resolve_settings(config: dict, environ: Optional[dict] = None) -> Settings:
    """
    Combine the config file with environment overrides.

    Environment variables win over the file. The access token is required.

    Raises:
        ConfigError: If no access token is configured or a value is malformed
    """
    environ = os.environ if environ is None else environ
    endpoints = config.get("endpoints") or {}
    tui = config.get("tui") or {}
    log_config = config.get("logging") or {}

    access_token = environ.get("S2_ACCESS_TOKEN") or config.get("access_token")
    if not access_token:
        raise ConfigError(
            "No access token configured. Set S2_ACCESS_TOKEN or access_token in "
            f"{DEFAULT_CONFIG_PATH}"
        )

    basin_endpoint = (
        environ.get("S2_BASIN_ENDPOINT") or endpoints.get("basin") or DEFAULT_BASIN_ENDPOINT
    )
    if "{basin}" not in basin_endpoint:
        raise ConfigError("Basin endpoint must contain a {basin} placeholder")

    try:
        return Settings(
            access_token=access_token,
            account_endpoint=(
                environ.get("S2_ACCOUNT_ENDPOINT")
                or endpoints.get("account")
                or DEFAULT_ACCOUNT_ENDPOINT
            ).rstrip("/"),
            basin_endpoint=basin_endpoint.rstrip("/"),
            request_timeout=float(tui.get("request_timeout", 10.0)),
            poll_interval=int(tui.get("poll_interval_ms", 50)) / 1000,
            splash_duration=int(tui.get("splash_ms", 1200)) / 1000,
            log_level=str(log_config.get("level", "INFO")).upper(),
            log_file=log_config.get("file", DEFAULT_LOG_FILE),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid tui setting: {e}") from e
