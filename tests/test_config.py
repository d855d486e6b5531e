import os
from pathlib import Path

import pytest

from portal.config import DEFAULTS, RunConfig, load_config
from workflow.errors import WorkflowConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("PORTAL_"):
            monkeypatch.delenv(key, raising=False)


def test_defaults_without_file(tmp_path: Path) -> None:
    config = load_config(tmp_path / "missing.toml")
    assert config.port == DEFAULTS["port"]
    assert config.port == 5000
    assert config.env == "development"
    assert config.headless is True
    assert config.viewport == {"width": 1366, "height": 900}
    assert config.log_root == Path("runs")


def test_toml_file_then_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.toml"
    path.write_text('[portal]\nport = 8080\nprobe_timeout_ms = 5000\nheadless = false\n', encoding="utf-8")
    monkeypatch.setenv("PORTAL_PORT", "9090")
    monkeypatch.setenv("PORTAL_ENV", "production")
    monkeypatch.setenv("PORTAL_LOG_ROOT", str(tmp_path / "runs"))

    config = load_config(path)

    assert config.port == 9090
    assert config.env == "production"
    assert config.probe_timeout_ms == 5000
    assert config.headless is False
    assert config.log_root == tmp_path / "runs"


def test_unknown_keys_are_ignored() -> None:
    config = RunConfig.from_mapping({"unknown": 1, "poll_interval_ms": "50"})
    assert config.poll_interval_ms == 50


@pytest.mark.parametrize("value", ["abc", "-5"])
def test_invalid_numbers_are_config_errors(value: str) -> None:
    with pytest.raises(WorkflowConfigError):
        RunConfig.from_mapping({"probe_timeout_ms": value})


def test_broken_toml_is_a_config_error(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text("[portal\nport = ", encoding="utf-8")
    with pytest.raises(WorkflowConfigError):
        load_config(path)
