from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from tap_core.errors import ServiceError
from tap_core.formula import load_builtin_formula, parse_formula
from tap_core.layout import PrefixLayout
from tap_core.service import (
    ServiceController,
    ServiceRegistry,
    build_service_unit,
    register_service,
    render_systemd_unit,
)


def _completed(stdout: str = "", stderr: str = "", returncode: int = 0) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=["systemctl"], returncode=returncode, stdout=stdout, stderr=stderr)


def test_build_service_unit_expands_prefix_paths(tmp_path: Path) -> None:
    layout = PrefixLayout(prefix=tmp_path / "prefix")
    unit = build_service_unit(load_builtin_formula(), layout)

    assert unit.label == "homebrew.mxcl.music-discord-rpc"
    assert unit.program_arguments == (str(layout.prefix / "opt" / "music-discord-rpc" / "bin" / "music-discord-rpc"),)
    assert unit.keep_alive is True
    assert dict(unit.environment) == {"PATH": f"{layout.prefix}/bin:/usr/bin:/bin"}
    assert unit.stdout_path == layout.prefix / "var" / "log" / "music-discord-rpc.log"
    assert unit.stderr_path == layout.prefix / "var" / "log" / "music-discord-rpc.error.log"
    assert unit.working_dir is None


def test_register_twice_keeps_single_unit(tmp_path: Path) -> None:
    layout = PrefixLayout(prefix=tmp_path / "prefix")
    registry = ServiceRegistry(tmp_path / "LaunchAgents", backend="launchd")
    descriptor = load_builtin_formula()

    first = register_service(descriptor, layout, registry)
    second = register_service(descriptor, layout, registry)

    assert first == second
    assert registry.units() == ["homebrew.mxcl.music-discord-rpc"]
    assert [path.name for path in registry.root.iterdir()] == ["homebrew.mxcl.music-discord-rpc.plist"]
    assert registry.load(first.label) == first
    assert layout.log_dir.is_dir()


def test_systemd_unit_round_trip(tmp_path: Path) -> None:
    layout = PrefixLayout(prefix=tmp_path / "prefix")
    registry = ServiceRegistry(tmp_path / "systemd", backend="systemd")
    unit = register_service(load_builtin_formula(), layout, registry)

    text = registry.unit_path(unit.label).read_text(encoding="utf-8")
    assert unit.label == "homebrew.music-discord-rpc"
    assert "Restart=always" in text
    assert f'Environment="PATH={layout.prefix}/bin:/usr/bin:/bin"' in text
    assert registry.load(unit.label) == unit


def test_unregister(tmp_path: Path) -> None:
    registry = ServiceRegistry(tmp_path / "agents", backend="launchd")
    unit = register_service(load_builtin_formula(), PrefixLayout(prefix=tmp_path / "prefix"), registry)

    assert registry.unregister(unit.label) is True
    assert registry.unregister(unit.label) is False
    assert registry.units() == []
    assert registry.load(unit.label) is None


def test_formula_without_service_cannot_register(tmp_path: Path) -> None:
    descriptor = parse_formula(
        """
name: plain
version: "1.0.0"
install: {bin: [plain]}
variants:
  arm: {url: "https://example.test/plain.tar.gz", sha256: "%s"}
"""
        % ("c" * 64)
    )
    with pytest.raises(ServiceError, match="does not declare a service"):
        build_service_unit(descriptor, PrefixLayout(prefix=tmp_path))


def test_unknown_backend_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ServiceError, match="unknown service backend"):
        ServiceRegistry(tmp_path, backend="upstart")


def test_systemd_unit_without_keep_alive_has_no_restart(tmp_path: Path) -> None:
    unit = build_service_unit(load_builtin_formula(), PrefixLayout(prefix=tmp_path), backend="systemd")
    text = render_systemd_unit(type(unit)(label=unit.label, program_arguments=unit.program_arguments, keep_alive=False))
    assert "Restart=" not in text


def test_controller_runs_systemctl(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls: list[list[str]] = []

    def _fake_run(command, **kwargs):
        del kwargs
        calls.append(list(command))
        return _completed()

    monkeypatch.setattr(subprocess, "run", _fake_run)
    controller = ServiceController(ServiceRegistry(tmp_path, backend="systemd"))
    controller.start("homebrew.music-discord-rpc")
    controller.restart("homebrew.music-discord-rpc")

    assert calls == [
        ["systemctl", "--user", "daemon-reload"],
        ["systemctl", "--user", "enable", "--now", "homebrew.music-discord-rpc.service"],
        ["systemctl", "--user", "restart", "homebrew.music-discord-rpc.service"],
    ]


def test_controller_failure_raises(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(subprocess, "run", lambda command, **kwargs: _completed(stderr="Unit not found", returncode=5))
    controller = ServiceController(ServiceRegistry(tmp_path, backend="systemd"))
    with pytest.raises(ServiceError, match="exit=5"):
        controller.stop("homebrew.music-discord-rpc")


def test_controller_missing_tool(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def _fake_run(command, **kwargs):
        raise FileNotFoundError(command[0])

    monkeypatch.setattr(subprocess, "run", _fake_run)
    controller = ServiceController(ServiceRegistry(tmp_path, backend="launchd"))
    with pytest.raises(ServiceError, match="launchctl not found"):
        controller.restart("homebrew.mxcl.music-discord-rpc")
