"""Configuration loader for the portal runtime."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from workflow.errors import WorkflowConfigError

ENV_PREFIX = "PORTAL_"

DEFAULTS: Dict[str, Any] = {
    "action_timeout_ms": 10000,
    "navigation_timeout_ms": 30000,
    "probe_timeout_ms": 20000,
    "settle_timeout_ms": 2000,
    "poll_interval_ms": 100,
    "log_root": "runs",
    "headless": True,
    "slow_mo_ms": 0,
    "viewport_width": 1366,
    "viewport_height": 900,
    "login_url": "https://iampe.adm.gov.it/sam/UI/Login?realm=/adm&locale=en",
    "sso_url": "https://sso.adm.gov.it/pud2odv?Location=https://odv.adm.gov.it/ODV_OHP/",
    "upload_url": "https://odv.adm.gov.it/ODV_GAD/pages/acquisizioneCertificazione.xhtml",
    "host": "0.0.0.0",
    "port": 5000,
    "env": "development",
}

_INT_FIELDS = (
    "action_timeout_ms",
    "navigation_timeout_ms",
    "probe_timeout_ms",
    "settle_timeout_ms",
    "poll_interval_ms",
    "slow_mo_ms",
    "viewport_width",
    "viewport_height",
    "port",
)


@dataclass(slots=True)
class RunConfig:
    action_timeout_ms: int = DEFAULTS["action_timeout_ms"]
    navigation_timeout_ms: int = DEFAULTS["navigation_timeout_ms"]
    probe_timeout_ms: int = DEFAULTS["probe_timeout_ms"]
    settle_timeout_ms: int = DEFAULTS["settle_timeout_ms"]
    poll_interval_ms: int = DEFAULTS["poll_interval_ms"]
    log_root: Path = field(default_factory=lambda: Path(DEFAULTS["log_root"]))
    headless: bool = DEFAULTS["headless"]
    slow_mo_ms: int = DEFAULTS["slow_mo_ms"]
    viewport_width: int = DEFAULTS["viewport_width"]
    viewport_height: int = DEFAULTS["viewport_height"]
    login_url: str = DEFAULTS["login_url"]
    sso_url: str = DEFAULTS["sso_url"]
    upload_url: str = DEFAULTS["upload_url"]
    host: str = DEFAULTS["host"]
    port: int = DEFAULTS["port"]
    env: str = DEFAULTS["env"]

    @property
    def viewport(self) -> Dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "RunConfig":
        data = dict(DEFAULTS)
        data.update({key: value for key, value in mapping.items() if key in DEFAULTS})
        numbers: Dict[str, int] = {}
        for key in _INT_FIELDS:
            try:
                numbers[key] = int(data[key])
            except (TypeError, ValueError) as exc:
                raise WorkflowConfigError(f"{key} must be an integer, got {data[key]!r}") from exc
            if numbers[key] < 0:
                raise WorkflowConfigError(f"{key} must not be negative")
        return cls(
            log_root=Path(data["log_root"]),
            headless=str(data["headless"]).lower() in {"true", "1", "yes"},
            login_url=str(data["login_url"]),
            sso_url=str(data["sso_url"]),
            upload_url=str(data["upload_url"]),
            host=str(data["host"]),
            env=str(data["env"]),
            **numbers,
        )


def _load_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        try:
            return tomllib.load(fh)
        except tomllib.TOMLDecodeError as exc:
            raise WorkflowConfigError(f"invalid config file {path}: {exc}") from exc


def load_config(config_path: Optional[Path] = None) -> RunConfig:
    """Load configuration from environment, optional TOML file, and defaults."""

    env_map: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if key.startswith(ENV_PREFIX):
            env_map[key[len(ENV_PREFIX):].lower()] = value

    path = config_path or Path("config.toml")
    file_map: Dict[str, Any] = _load_toml(path).get("portal", {})

    merged = {**file_map, **env_map}
    return RunConfig.from_mapping(merged)
