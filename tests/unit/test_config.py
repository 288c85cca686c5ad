"""
Unit tests for configuration and the command line.
"""

import pytest

from gatewayserver import GatewayConfig, __version__
from gatewayserver.__main__ import build_parser, config_from_args, main


class TestGatewayConfig:
    """Tests for defaults, environment and validation."""

    def test_defaults(self):
        config = GatewayConfig()

        assert config.port == 7041
        assert config.app == "application.py"
        assert config.worker_mode == "process"
        assert config.server_name == f"gatewayserver/{__version__}"
        config.validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("GATEWAY_PORT", "9000")
        monkeypatch.setenv("GATEWAY_APP", "myapp.handlers")
        monkeypatch.setenv("GATEWAY_WORKER_MODE", "thread")
        monkeypatch.setenv("GATEWAY_GRACE", "0.5")
        monkeypatch.setenv("GATEWAY_LOG_FORMAT", "json")

        config = GatewayConfig.from_env()

        assert config.port == 9000
        assert config.app == "myapp.handlers"
        assert config.worker_mode == "thread"
        assert config.grace_period == 0.5
        assert config.log_format == "json"

    @pytest.mark.parametrize("overrides", [
        {"port": 70000},
        {"port": -1},
        {"buffer_size": 100},
        {"max_request_size": 10},
        {"output_buffer_size": 8},
        {"grace_period": -1},
        {"worker_mode": "fork"},
        {"log_format": "xml"},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            GatewayConfig(**overrides).validate()


class TestCommandLine:
    """Tests for argument parsing and precedence."""

    def test_positional_port_and_app(self, monkeypatch):
        monkeypatch.delenv("GATEWAY_PORT", raising=False)
        args = build_parser().parse_args(["7100", "examples/application.py"])

        config = config_from_args(args)

        assert config.port == 7100
        assert config.app == "examples/application.py"

    def test_cli_overrides_env(self, monkeypatch):
        monkeypatch.setenv("GATEWAY_PORT", "9000")
        monkeypatch.setenv("GATEWAY_LOG_LEVEL", "DEBUG")
        args = build_parser().parse_args(["7100", "--worker-mode", "thread", "--grace", "2"])

        config = config_from_args(args)

        assert config.port == 7100
        assert config.worker_mode == "thread"
        assert config.grace_period == 2.0
        assert config.log_level == "DEBUG"

    def test_env_used_without_args(self, monkeypatch):
        monkeypatch.setenv("GATEWAY_PORT", "9000")
        config = config_from_args(build_parser().parse_args([]))
        assert config.port == 9000

    def test_invalid_config_exits_1(self, monkeypatch, capsys):
        monkeypatch.delenv("GATEWAY_PORT", raising=False)

        with pytest.raises(SystemExit) as exc_info:
            main(["70000"])

        assert exc_info.value.code == 1
        assert "Invalid port" in capsys.readouterr().err

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out
