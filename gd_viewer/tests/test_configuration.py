from __future__ import annotations

from pathlib import Path

import pytest

from gd_viewer.configuration import PollingConfig, ViewerConfig, load_config, load_default_config
from gd_viewer.main import apply_overrides, parse_args


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_bundled_defaults() -> None:
    config = load_default_config()
    assert config.server.host == "127.0.0.1:8288"
    assert config.server.token is None
    assert config.server.use_push is True
    assert config.polling.fast_interval_s == 0.5
    assert config.polling.slow_interval_s == 5.0
    assert config.viewer.scale_default == 0.8
    assert config.logging.level == "INFO"


def test_minimal_file_fills_defaults(tmp_path: Path) -> None:
    config = load_config(write_config(tmp_path, "server:\n  host: plots.local:9000\n  token: abc\n"))
    assert config.server.host == "plots.local:9000"
    assert config.server.token == "abc"
    assert config.server.tls is False
    assert config.polling == PollingConfig()
    assert config.viewer == ViewerConfig()


def test_missing_host_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(KeyError):
        load_config(write_config(tmp_path, "polling:\n  fast_interval_s: 1.0\n"))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"fast_interval_s": 0.0},
        {"slow_interval_s": -1.0},
        {"upgrade_cooldown_s": -0.5},
        {"request_timeout_s": 0.0},
    ],
)
def test_polling_validation(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        PollingConfig(**kwargs)


def test_viewer_scale_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ViewerConfig(scale_default=0.0)


def test_command_line_overrides() -> None:
    config = load_default_config()
    args = parse_args(["--host", "remote:1234", "--token", "t0k", "--no-push"])
    config = apply_overrides(config, args)
    assert config.server.host == "remote:1234"
    assert config.server.token == "t0k"
    assert config.server.use_push is False


def test_no_overrides_keeps_config() -> None:
    config = load_default_config()
    assert apply_overrides(config, parse_args([])) == config
