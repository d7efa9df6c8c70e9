"""Service unit rendering, persistence and control."""

from __future__ import annotations

import logging
import os
import platform
import plistlib
import shlex
import subprocess
from pathlib import Path

from .errors import ServiceError
from .formula import expand_template
from .layout import PrefixLayout
from .types import FormulaDescriptor, ServiceUnit

logger = logging.getLogger(__name__)

LAUNCHD = "launchd"
SYSTEMD = "systemd"
BACKENDS = (LAUNCHD, SYSTEMD)


def default_backend() -> str:
    return LAUNCHD if platform.system() == "Darwin" else SYSTEMD


def default_registry_dir(backend: str) -> Path:
    if backend == LAUNCHD:
        return Path.home() / "Library" / "LaunchAgents"
    config_home = os.getenv("XDG_CONFIG_HOME", "").strip()
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "systemd" / "user"


def service_label(name: str, backend: str) -> str:
    if backend == LAUNCHD:
        return f"homebrew.mxcl.{name}"
    return f"homebrew.{name}"


def build_service_unit(
    descriptor: FormulaDescriptor,
    layout: PrefixLayout,
    *,
    backend: str = LAUNCHD,
) -> ServiceUnit:
    spec = descriptor.service
    if spec is None:
        raise ServiceError(f"formula '{descriptor.name}' does not declare a service")
    values = layout.placeholders(descriptor.name, descriptor.version)

    def _path(template: str | None) -> Path | None:
        return Path(expand_template(template, values)) if template else None

    return ServiceUnit(
        label=service_label(descriptor.name, backend),
        program_arguments=tuple(expand_template(item, values) for item in spec.run),
        keep_alive=spec.keep_alive,
        environment={key: expand_template(value, values) for key, value in spec.environment.items()},
        stdout_path=_path(spec.log_path),
        stderr_path=_path(spec.error_log_path),
        working_dir=_path(spec.working_dir),
    )


class ServiceRegistry:
    """Directory of persisted unit definitions, one file per label."""

    def __init__(self, root: Path | None = None, *, backend: str | None = None) -> None:
        self.backend = backend or default_backend()
        if self.backend not in BACKENDS:
            raise ServiceError(f"unknown service backend '{self.backend}'")
        self.root = (root or default_registry_dir(self.backend)).expanduser()

    @property
    def suffix(self) -> str:
        return ".plist" if self.backend == LAUNCHD else ".service"

    def unit_path(self, label: str) -> Path:
        return self.root / f"{label}{self.suffix}"

    def register(self, unit: ServiceUnit) -> Path:
        path = self.unit_path(unit.label)
        payload = render_launchd_plist(unit) if self.backend == LAUNCHD else render_systemd_unit(unit).encode("utf-8")
        temp_path = path.with_name(path.name + ".tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(payload)
            os.replace(temp_path, path)
        except OSError as exc:
            temp_path.unlink(missing_ok=True)
            raise ServiceError(f"unable to write service unit {path}: {exc}") from exc
        logger.debug("service unit written label=%s path=%s", unit.label, path)
        return path

    def unregister(self, label: str) -> bool:
        path = self.unit_path(label)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as exc:
            raise ServiceError(f"unable to remove service unit {path}: {exc}") from exc
        return True

    def units(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(path.name[: -len(self.suffix)] for path in self.root.glob(f"homebrew.*{self.suffix}"))

    def load(self, label: str) -> ServiceUnit | None:
        path = self.unit_path(label)
        if not path.exists():
            return None
        try:
            if self.backend == LAUNCHD:
                return _parse_launchd_plist(path.read_bytes())
            return _parse_systemd_unit(label, path.read_text(encoding="utf-8"))
        except (OSError, ValueError, plistlib.InvalidFileException) as exc:
            raise ServiceError(f"unable to read service unit {path}: {exc}") from exc


def register_service(
    descriptor: FormulaDescriptor,
    layout: PrefixLayout,
    registry: ServiceRegistry,
) -> ServiceUnit:
    unit = build_service_unit(descriptor, layout, backend=registry.backend)
    for log_path in (unit.stdout_path, unit.stderr_path):
        if log_path is None:
            continue
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ServiceError(f"unable to create log directory {log_path.parent}: {exc}") from exc
    registry.register(unit)
    return unit


def render_launchd_plist(unit: ServiceUnit) -> bytes:
    document: dict[str, object] = {
        "Label": unit.label,
        "ProgramArguments": list(unit.program_arguments),
        "RunAtLoad": True,
        "KeepAlive": unit.keep_alive,
    }
    if unit.environment:
        document["EnvironmentVariables"] = dict(unit.environment)
    if unit.stdout_path is not None:
        document["StandardOutPath"] = str(unit.stdout_path)
    if unit.stderr_path is not None:
        document["StandardErrorPath"] = str(unit.stderr_path)
    if unit.working_dir is not None:
        document["WorkingDirectory"] = str(unit.working_dir)
    return plistlib.dumps(document, sort_keys=True)


def render_systemd_unit(unit: ServiceUnit) -> str:
    lines = [
        "[Unit]",
        f"Description=Homebrew generated unit for {unit.label.removeprefix('homebrew.')}",
        "",
        "[Install]",
        "WantedBy=default.target",
        "",
        "[Service]",
        "Type=simple",
        "ExecStart=" + " ".join(_systemd_quote(arg) for arg in unit.program_arguments),
    ]
    if unit.keep_alive:
        lines.append("Restart=always")
    for key, value in unit.environment.items():
        lines.append("Environment=" + _systemd_quote(f"{key}={value}"))
    if unit.working_dir is not None:
        lines.append(f"WorkingDirectory={unit.working_dir}")
    if unit.stdout_path is not None:
        lines.append(f"StandardOutput=append:{unit.stdout_path}")
    if unit.stderr_path is not None:
        lines.append(f"StandardError=append:{unit.stderr_path}")
    return "\n".join(lines) + "\n"


def _systemd_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _parse_launchd_plist(data: bytes) -> ServiceUnit:
    document = plistlib.loads(data)
    if not isinstance(document, dict):
        raise ValueError("launchd plist must be a dictionary")
    stdout = document.get("StandardOutPath")
    stderr = document.get("StandardErrorPath")
    workdir = document.get("WorkingDirectory")
    return ServiceUnit(
        label=str(document.get("Label") or ""),
        program_arguments=tuple(str(item) for item in document.get("ProgramArguments") or []),
        keep_alive=bool(document.get("KeepAlive", False)),
        environment={str(k): str(v) for k, v in (document.get("EnvironmentVariables") or {}).items()},
        stdout_path=Path(stdout) if stdout else None,
        stderr_path=Path(stderr) if stderr else None,
        working_dir=Path(workdir) if workdir else None,
    )


def _parse_systemd_unit(label: str, text: str) -> ServiceUnit:
    arguments: tuple[str, ...] = ()
    environment: dict[str, str] = {}
    keep_alive = False
    stdout_path: Path | None = None
    stderr_path: Path | None = None
    working_dir: Path | None = None
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith(("#", "[")) or "=" not in line:
            continue
        key, value = line.split("=", 1)
        if key == "ExecStart":
            arguments = tuple(shlex.split(value))
        elif key == "Restart":
            keep_alive = value == "always"
        elif key == "Environment":
            for item in shlex.split(value):
                env_key, _, env_value = item.partition("=")
                environment[env_key] = env_value
        elif key == "StandardOutput":
            stdout_path = Path(value.removeprefix("append:"))
        elif key == "StandardError":
            stderr_path = Path(value.removeprefix("append:"))
        elif key == "WorkingDirectory":
            working_dir = Path(value)
    return ServiceUnit(
        label=label,
        program_arguments=arguments,
        keep_alive=keep_alive,
        environment=environment,
        stdout_path=stdout_path,
        stderr_path=stderr_path,
        working_dir=working_dir,
    )


class ServiceController:
    """Start/stop registered units through ``launchctl`` or ``systemctl --user``."""

    def __init__(self, registry: ServiceRegistry, *, timeout_seconds: float = 30.0) -> None:
        self.registry = registry
        self.timeout_seconds = timeout_seconds

    def start(self, label: str) -> None:
        if self.registry.backend == LAUNCHD:
            self._run(["launchctl", "bootstrap", _launchd_domain(), str(self.registry.unit_path(label))])
            return
        self._run(["systemctl", "--user", "daemon-reload"])
        self._run(["systemctl", "--user", "enable", "--now", f"{label}.service"])

    def stop(self, label: str) -> None:
        if self.registry.backend == LAUNCHD:
            self._run(["launchctl", "bootout", f"{_launchd_domain()}/{label}"])
            return
        self._run(["systemctl", "--user", "disable", "--now", f"{label}.service"])

    def restart(self, label: str) -> None:
        if self.registry.backend == LAUNCHD:
            self._run(["launchctl", "kickstart", "-k", f"{_launchd_domain()}/{label}"])
            return
        self._run(["systemctl", "--user", "restart", f"{label}.service"])

    def _run(self, command: list[str]) -> subprocess.CompletedProcess[str]:
        logger.debug("service command cmd=%s", " ".join(command))
        try:
            result = subprocess.run(
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=max(float(self.timeout_seconds), 1.0),
            )
        except FileNotFoundError as exc:
            raise ServiceError(f"{command[0]} not found; cannot control services on this host") from exc
        except subprocess.TimeoutExpired as exc:
            raise ServiceError(f"{command[0]} timed out after {self.timeout_seconds:.1f}s") from exc
        if result.returncode != 0:
            detail = (result.stderr or "").strip()
            message = f"service command failed (exit={result.returncode}) cmd='{' '.join(command)}'"
            raise ServiceError(f"{message} err='{detail}'" if detail else message)
        return result


def _launchd_domain() -> str:
    return f"gui/{os.getuid()}"
