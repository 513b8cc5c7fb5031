"""Tests for config module."""

from pathlib import Path
from unittest.mock import Mock

import pytest
import yaml

from webpair.config import Config, EndpointConfig, RelayConfig, get_config_path, load_config
from webpair.errors import ConfigError


class TestConfigDefaults:
    """Test default configuration values."""

    def test_default_config_values(self):
        """Config has sensible defaults when no file exists."""
        config = Config()

        assert config.log_level == "INFO"
        assert config.log_file is None
        assert config.endpoint == EndpointConfig(bind_address="0.0.0.0", port=0)
        assert config.endpoint.advertise_host is None
        assert config.relay.connect_timeout == 10.0
        assert config.relay.port == 8080
        assert config.relay.session_ttl == 300.0


class TestGetConfigPath:
    """Test config path resolution."""

    def test_get_config_path_default(self):
        """Default config path is ~/.config/webpair/config.yaml."""
        assert get_config_path() == Path.home() / ".config" / "webpair" / "config.yaml"

    def test_get_config_path_custom(self):
        """Can override config path."""
        custom = Path("/custom/config.yaml")
        assert get_config_path(custom) == custom


class TestLoadConfig:
    """Test config loading."""

    def test_load_config_no_file_returns_defaults(self, tmp_path):
        """Config returns defaults when no file exists."""
        assert load_config(tmp_path / "nonexistent.yaml") == Config()

    def test_load_config_from_file(self, tmp_path):
        """Config loads values from YAML file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "log_level": "DEBUG",
                    "endpoint": {"bind_address": "127.0.0.1", "port": 9000},
                    "relay": {"connect_timeout": 3, "session_ttl": 60},
                }
            )
        )

        config = load_config(config_file)

        assert config.log_level == "DEBUG"
        assert config.endpoint.bind_address == "127.0.0.1"
        assert config.endpoint.port == 9000
        assert config.relay.connect_timeout == 3
        assert config.relay.session_ttl == 60
        assert config.relay.port == 8080

    def test_partial_section_keeps_defaults(self):
        """Keys missing from a section keep their defaults."""
        reader = Mock(return_value={"endpoint": {"advertise_host": "192.168.1.5"}})

        config = load_config(Path("/fake"), file_reader=reader)

        assert config.endpoint.advertise_host == "192.168.1.5"
        assert config.endpoint.port == 0
        assert config.relay == RelayConfig()
        reader.assert_called_once_with(Path("/fake"))

    @pytest.mark.parametrize("content", ["", "   \n", "not: [valid", "- a list\n"])
    def test_unusable_file_returns_defaults(self, tmp_path, content):
        """Empty, invalid or non-mapping YAML falls back to defaults."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(content)

        assert load_config(config_file) == Config()

    @pytest.mark.parametrize(
        "data",
        [
            {"endpoint": {"port": 70000}},
            {"endpoint": {"port": -1}},
            {"endpoint": {"port": "8080"}},
            {"relay": {"port": True}},
        ],
    )
    def test_invalid_port(self, data):
        """Ports must be integers in range."""
        with pytest.raises(ConfigError, match="port"):
            load_config(Path("/fake"), file_reader=lambda _: data)

    @pytest.mark.parametrize(
        "data,name",
        [
            ({"relay": {"connect_timeout": "10"}}, "relay.connect_timeout"),
            ({"relay": {"connect_timeout": 0}}, "relay.connect_timeout"),
            ({"relay": {"session_ttl": -5}}, "relay.session_ttl"),
            ({"relay": {"session_ttl": True}}, "relay.session_ttl"),
            ({"relay": {"host": 8080}}, "relay.host"),
            ({"log_level": "LOUD"}, "log_level"),
            ({"log_level": 10}, "log_level"),
            ({"log_file": ["a.log"]}, "log_file"),
            ({"endpoint": {"bind_address": ""}}, "endpoint.bind_address"),
            ({"endpoint": {"advertise_host": 192}}, "endpoint.advertise_host"),
            ({"endpoint": "127.0.0.1"}, "endpoint"),
        ],
    )
    def test_invalid_values(self, data, name):
        """Values of the wrong type are rejected when loading."""
        with pytest.raises(ConfigError, match=name):
            load_config(Path("/fake"), file_reader=lambda _: data)

    def test_lowercase_log_level(self):
        """Level names are case-insensitive."""
        config = load_config(Path("/fake"), file_reader=lambda _: {"log_level": "debug"})
        assert config.log_level == "debug"
