"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from bwreader import __version__
from bwreader.models.config import (
    APIConfig,
    BwReaderConfig,
    HubConfig,
    KubernetesConfig,
    LogConfig,
)


def _env(key: str, default: str = "") -> str:
    # Empty values count as unset; Deployment manifests often template in "".
    return os.environ.get(key) or default


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    try:
        val = int(_env(key, str(default)))
    except ValueError:
        val = default
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    try:
        val = float(_env(key, str(default)))
    except ValueError:
        val = default
    if min_val is not None:
        val = max(val, min_val)
    return val


def parse_secret_names(value: str) -> list[str]:
    """Split a comma-separated list, trimming whitespace and dropping blanks."""
    return [name.strip() for name in value.split(",") if name.strip()]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> BwReaderConfig:
    """Load configuration from the process environment."""
    return BwReaderConfig(
        namespace=_env("POD_NAMESPACE", ""),
        secret_names=parse_secret_names(_env("SECRET_NAMES", "")),
        app_version=_env("APP_VERSION", __version__),
        refresh_interval_seconds=_env_int("DASHBOARD_REFRESH_INTERVAL", 5, min_val=1),
        api=APIConfig(
            port=_env_int("PORT", 8080, min_val=1, max_val=65535),
        ),
        hub=HubConfig(
            send_buffer=_env_int("WS_SEND_BUFFER", 256, min_val=1),
            command_buffer=_env_int("HUB_COMMAND_BUFFER", 64, min_val=1),
            write_wait_seconds=_env_float("WS_WRITE_WAIT", 10.0, min_val=0.1),
            pong_wait_seconds=_env_float("WS_PONG_WAIT", 60.0, min_val=1.0),
        ),
        kubernetes=KubernetesConfig(
            request_timeout_seconds=_env_float("K8S_REQUEST_TIMEOUT", 10.0, min_val=0.1),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
