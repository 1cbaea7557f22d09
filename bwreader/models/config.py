"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

from bwreader import __version__


@dataclass
class HubConfig:
    """WebSocket broadcast hub configuration."""

    send_buffer: int = 256
    command_buffer: int = 64
    write_wait_seconds: float = 10.0
    pong_wait_seconds: float = 60.0

    @property
    def ping_period_seconds(self) -> float:
        # Must stay below the pong window.
        return self.pong_wait_seconds * 9 / 10


@dataclass
class KubernetesConfig:
    """Kubernetes API access configuration."""

    request_timeout_seconds: float = 10.0


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class BwReaderConfig:
    """Top-level bitwarden-reader configuration."""

    namespace: str = ""
    secret_names: list[str] = field(default_factory=list)
    app_version: str = __version__
    refresh_interval_seconds: int = 5
    api: APIConfig = field(default_factory=APIConfig)
    hub: HubConfig = field(default_factory=HubConfig)
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    log: LogConfig = field(default_factory=LogConfig)
