from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigError
from .layout import PrefixLayout

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.toml"
CONFIG_ENV_VAR = "TAP_CONFIG"


def _resolve_env_value(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_name = value[2:-1].strip()
        if env_name:
            return os.getenv(env_name, "")
    return value


def _to_optional_int(value: Any) -> int | None:
    value = _resolve_env_value(value)
    if value is None or value == "":
        return None
    return int(value)


def _to_domain_tuple(value: Any) -> tuple[str, ...]:
    value = _resolve_env_value(value)
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        raise ValueError("download.allowlist_domains must be a list of domains")
    return tuple(str(item).strip() for item in value if str(item).strip())


def _section(payload: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = payload.get(name)
    return section if isinstance(section, Mapping) else {}


@dataclass(frozen=True)
class DownloadConfig:
    timeout_seconds: float = 60.0
    allowlist_domains: tuple[str, ...] = ()
    max_download_bytes: int | None = None
    user_agent: str = "tap-installer"


@dataclass(frozen=True)
class ServiceConfig:
    backend: str | None = None
    registry_dir: Path | None = None


@dataclass(frozen=True)
class TapConfig:
    download: DownloadConfig = field(default_factory=DownloadConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    smoke_timeout_seconds: float = 30.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TapConfig":
        download = _section(payload, "download")
        service = _section(payload, "service")
        smoke = _section(payload, "smoke")

        registry_raw = str(_resolve_env_value(service.get("registry_dir")) or "").strip()
        backend_raw = str(_resolve_env_value(service.get("backend")) or "").strip().lower()
        if backend_raw and backend_raw not in {"launchd", "systemd"}:
            raise ValueError("service.backend must be one of: launchd, systemd")

        return cls(
            download=DownloadConfig(
                timeout_seconds=float(_resolve_env_value(download.get("timeout_seconds", 60.0))),
                allowlist_domains=_to_domain_tuple(download.get("allowlist_domains")),
                max_download_bytes=_to_optional_int(download.get("max_download_bytes")),
                user_agent=str(_resolve_env_value(download.get("user_agent")) or "tap-installer"),
            ),
            service=ServiceConfig(
                backend=backend_raw or None,
                registry_dir=Path(registry_raw).expanduser() if registry_raw else None,
            ),
            smoke_timeout_seconds=float(_resolve_env_value(smoke.get("timeout_seconds", 30.0))),
        )


def config_path_for(layout: PrefixLayout, explicit: str | Path | None = None) -> Path:
    if explicit:
        return Path(explicit).expanduser()
    from_env = os.getenv(CONFIG_ENV_VAR, "").strip()
    if from_env:
        return Path(from_env).expanduser()
    return layout.etc_dir / CONFIG_FILENAME


def load_config(layout: PrefixLayout, explicit: str | Path | None = None) -> TapConfig:
    path = config_path_for(layout, explicit)
    if not path.exists():
        return TapConfig()
    try:
        payload = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("ignoring unreadable config %s: %s", path, exc)
        return TapConfig()
    try:
        return TapConfig.from_dict(payload)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid config {path}: {exc}") from exc
