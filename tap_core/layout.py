"""Prefix directory layout (Cellar, opt, bin, var)."""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from pathlib import Path

PREFIX_ENV_VARS = ("TAP_PREFIX", "HOMEBREW_PREFIX")


def default_prefix() -> Path:
    for env_name in PREFIX_ENV_VARS:
        value = os.getenv(env_name, "").strip()
        if value:
            return Path(value).expanduser()
    if platform.system() == "Darwin" and platform.machine().lower() in {"arm64", "aarch64"}:
        return Path("/opt/homebrew")
    return Path("/usr/local")


@dataclass(frozen=True)
class PrefixLayout:
    prefix: Path

    @classmethod
    def resolve(cls, prefix: str | Path | None = None) -> "PrefixLayout":
        root = Path(prefix).expanduser() if prefix else default_prefix()
        return cls(prefix=root.resolve())

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"

    @property
    def cellar_dir(self) -> Path:
        return self.prefix / "Cellar"

    @property
    def opt_dir(self) -> Path:
        return self.prefix / "opt"

    @property
    def var_dir(self) -> Path:
        return self.prefix / "var"

    @property
    def log_dir(self) -> Path:
        return self.var_dir / "log"

    @property
    def cache_dir(self) -> Path:
        return self.var_dir / "cache" / "tap"

    @property
    def state_dir(self) -> Path:
        return self.var_dir / "tap"

    @property
    def etc_dir(self) -> Path:
        return self.prefix / "etc" / "tap"

    def keg_dir(self, name: str, version: str) -> Path:
        return self.cellar_dir / name / version

    def keg_bin_dir(self, name: str, version: str) -> Path:
        return self.keg_dir(name, version) / "bin"

    def opt_link(self, name: str) -> Path:
        return self.opt_dir / name

    def opt_bin_dir(self, name: str) -> Path:
        return self.opt_link(name) / "bin"

    def placeholders(self, name: str, version: str) -> dict[str, str]:
        """Values substituted into `{...}` fields of a formula."""

        return {
            "name": name,
            "version": version,
            "prefix": str(self.prefix),
            "bin": str(self.keg_bin_dir(name, version)),
            "opt_bin": str(self.opt_bin_dir(name)),
            "var": str(self.var_dir),
        }
