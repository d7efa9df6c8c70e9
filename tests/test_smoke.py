from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from tap_core.errors import VersionMismatch
from tap_core.formula import load_builtin_formula
from tap_core.smoke import run_smoke_test


def _completed(stdout: str = "", returncode: int = 0) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=["music-discord-rpc"], returncode=returncode, stdout=stdout, stderr="")


def test_smoke_test_passes_when_version_is_printed(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[list[str]] = []

    def _fake_run(command, **kwargs):
        calls.append(list(command))
        assert kwargs["capture_output"] is True
        return _completed("music-discord-rpc v0.6.2\n")

    monkeypatch.setattr(subprocess, "run", _fake_run)
    assert run_smoke_test(load_builtin_formula(), Path("/opt/bin/music-discord-rpc")) is True
    assert calls == [["/opt/bin/music-discord-rpc", "--version"]]


def test_smoke_test_fails_on_other_version(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(subprocess, "run", lambda command, **kwargs: _completed("music-discord-rpc v0.6.1\n"))
    with pytest.raises(VersionMismatch) as excinfo:
        run_smoke_test(load_builtin_formula(), Path("/opt/bin/music-discord-rpc"))
    assert excinfo.value.expected == "0.6.2"
    assert "v0.6.1" in excinfo.value.output


def test_smoke_test_fails_on_non_zero_exit(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(subprocess, "run", lambda command, **kwargs: _completed("0.6.2", returncode=2))
    with pytest.raises(VersionMismatch, match="exit=2"):
        run_smoke_test(load_builtin_formula(), Path("/opt/bin/music-discord-rpc"))


def test_smoke_test_missing_binary(tmp_path: Path) -> None:
    with pytest.raises(VersionMismatch, match="unable to execute"):
        run_smoke_test(load_builtin_formula(), tmp_path / "missing")


def test_smoke_test_runs_real_executable(tmp_path: Path) -> None:
    script = tmp_path / "music-discord-rpc"
    script.write_text('#!/bin/sh\necho "music-discord-rpc v0.6.2"\n', encoding="utf-8")
    script.chmod(0o755)
    assert run_smoke_test(load_builtin_formula(), script) is True
