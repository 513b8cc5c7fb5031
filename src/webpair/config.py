"""Configuration management for webpair."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

from webpair.errors import ConfigError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class EndpointConfig:
    """Local endpoint configuration."""

    bind_address: str = "0.0.0.0"
    port: int = 0  # 0 picks a random high port
    advertise_host: str | None = None  # Skip LAN discovery when set


@dataclass
class RelayConfig:
    """Relay client and development relay configuration."""

    connect_timeout: float = 10.0  # seconds
    host: str = "0.0.0.0"
    port: int = 8080
    session_ttl: float = 300.0  # seconds


@dataclass
class Config:
    """webpair configuration."""

    log_level: str = "INFO"
    log_file: str | None = None
    endpoint: EndpointConfig = field(default_factory=EndpointConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "webpair" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        data = yaml.safe_load(content)
    except yaml.YAMLError:
        return None
    return data if isinstance(data, dict) else None


def _check_port(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 65535:
        raise ConfigError(f"{name} must be an integer between 0 and 65535, got {value!r}")


def _check_seconds(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{name} must be a positive number of seconds, got {value!r}")


def _check_text(name: str, value: Any, optional: bool = False) -> None:
    if value is None and optional:
        return
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{name} must be a non-empty string, got {value!r}")


def _check_log_level(value: Any) -> None:
    if not isinstance(value, str) or value.upper() not in LOG_LEVELS:
        raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {value!r}")


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{name} must be a mapping, got {section!r}")
    return section


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
) -> Config:
    """Load configuration from file.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.

    Returns:
        Config object with values from file or defaults.

    Raises:
        ConfigError: If a value has the wrong type or is out of range.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader

    data = reader(config_path)

    if data is None:
        return Config()

    # Parse endpoint config section
    endpoint_data = _section(data, "endpoint")
    endpoint_config = EndpointConfig(
        bind_address=endpoint_data.get("bind_address", EndpointConfig.bind_address),
        port=endpoint_data.get("port", EndpointConfig.port),
        advertise_host=endpoint_data.get(
            "advertise_host", EndpointConfig.advertise_host
        ),
    )

    # Parse relay config section
    relay_data = _section(data, "relay")
    relay_config = RelayConfig(
        connect_timeout=relay_data.get(
            "connect_timeout", RelayConfig.connect_timeout
        ),
        host=relay_data.get("host", RelayConfig.host),
        port=relay_data.get("port", RelayConfig.port),
        session_ttl=relay_data.get("session_ttl", RelayConfig.session_ttl),
    )

    config = Config(
        log_level=data.get("log_level", Config.log_level),
        log_file=data.get("log_file", Config.log_file),
        endpoint=endpoint_config,
        relay=relay_config,
    )

    _check_log_level(config.log_level)
    _check_text("log_file", config.log_file, optional=True)
    _check_text("endpoint.bind_address", endpoint_config.bind_address)
    _check_port("endpoint.port", endpoint_config.port)
    _check_text("endpoint.advertise_host", endpoint_config.advertise_host, optional=True)
    _check_seconds("relay.connect_timeout", relay_config.connect_timeout)
    _check_text("relay.host", relay_config.host)
    _check_port("relay.port", relay_config.port)
    _check_seconds("relay.session_ttl", relay_config.session_ttl)

    return config
