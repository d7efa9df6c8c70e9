from __future__ import annotations

import hashlib
import io
import tarfile
from pathlib import Path

import pytest

from tap_core.errors import ChecksumMismatch, InstallIOError, UnsafeArchiveError
from tap_core.install import install, link_opt, uninstall
from tap_core.layout import PrefixLayout
from tap_core.types import FormulaDescriptor, InstallAction


def _descriptor(*executables: str) -> FormulaDescriptor:
    return FormulaDescriptor(
        name="music-discord-rpc",
        description="",
        homepage="",
        version="0.6.2",
        license="MIT",
        variants={},
        install=InstallAction(executables=executables or ("music-discord-rpc",)),
    )


def _archive(path: Path, members: dict[str, bytes]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tf:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tf.addfile(info, io.BytesIO(data))
    return path


def test_install_copies_executable_with_exec_bits(tmp_path: Path) -> None:
    archive = _archive(tmp_path / "demo.tar.gz", {"music-discord-rpc": b"#!/bin/sh\necho hi\n"})
    target = tmp_path / "keg" / "bin"

    files = install(_descriptor(), archive, target, expected_sha256=hashlib.sha256(archive.read_bytes()).hexdigest())

    assert files == (target / "music-discord-rpc",)
    assert files[0].read_bytes() == b"#!/bin/sh\necho hi\n"
    assert files[0].stat().st_mode & 0o777 == 0o755
    assert sorted(path.name for path in target.iterdir()) == ["music-discord-rpc"]


def test_install_finds_nested_member(tmp_path: Path) -> None:
    archive = _archive(
        tmp_path / "demo.tar.gz",
        {"release/docs/music-discord-rpc": b"decoy", "release/music-discord-rpc": b"binary"},
    )
    files = install(_descriptor(), archive, tmp_path / "bin")
    assert files[0].read_bytes() == b"binary"


def test_checksum_mismatch_writes_nothing(tmp_path: Path) -> None:
    archive = _archive(tmp_path / "demo.tar.gz", {"music-discord-rpc": b"binary"})
    target = tmp_path / "bin"

    with pytest.raises(ChecksumMismatch):
        install(_descriptor(), archive, target, expected_sha256="0" * 64)

    assert not target.exists() or not any(target.iterdir())


def test_missing_archive_with_checksum_is_install_error(tmp_path: Path) -> None:
    with pytest.raises(InstallIOError, match="unable to read archive"):
        install(_descriptor(), tmp_path / "missing.tar.gz", tmp_path / "bin", expected_sha256="0" * 64)

    assert not (tmp_path / "bin").exists()


def test_missing_executable_leaves_target_untouched(tmp_path: Path) -> None:
    archive = _archive(tmp_path / "demo.tar.gz", {"music-discord-rpc": b"binary"})
    target = tmp_path / "bin"
    target.mkdir()
    (target / "existing").write_text("keep", encoding="utf-8")

    with pytest.raises(InstallIOError, match="'helper' not found"):
        install(_descriptor("music-discord-rpc", "helper"), archive, target)

    assert sorted(path.name for path in target.iterdir()) == ["existing"]


def test_missing_executable_does_not_create_target(tmp_path: Path) -> None:
    archive = _archive(tmp_path / "demo.tar.gz", {"README.md": b"docs"})
    target = tmp_path / "keg" / "bin"

    with pytest.raises(InstallIOError, match="'music-discord-rpc' not found"):
        install(_descriptor(), archive, target)

    assert not (tmp_path / "keg").exists()


def test_path_traversal_member_is_rejected(tmp_path: Path) -> None:
    archive = _archive(tmp_path / "demo.tar.gz", {"../escape": b"evil", "music-discord-rpc": b"binary"})
    target = tmp_path / "keg" / "bin"

    with pytest.raises(UnsafeArchiveError):
        install(_descriptor(), archive, target)

    assert not (tmp_path / "keg" / "escape").exists()
    assert not target.exists()


def test_corrupt_archive_is_install_error(tmp_path: Path) -> None:
    archive = tmp_path / "demo.tar.gz"
    archive.write_bytes(b"not a tarball")
    with pytest.raises(InstallIOError, match="unable to open archive"):
        install(_descriptor(), archive, tmp_path / "bin")


def test_link_opt_and_uninstall(tmp_path: Path) -> None:
    layout = PrefixLayout(prefix=tmp_path / "prefix")
    descriptor = _descriptor()
    archive = _archive(tmp_path / "demo.tar.gz", {"music-discord-rpc": b"binary"})
    install(descriptor, archive, layout.keg_bin_dir(descriptor.name, descriptor.version))

    link_opt(layout, descriptor)
    linked = layout.bin_dir / "music-discord-rpc"
    assert layout.opt_link(descriptor.name).is_symlink()
    assert linked.is_symlink()
    assert linked.read_bytes() == b"binary"

    # relinking over existing links is allowed
    link_opt(layout, descriptor)

    removed = uninstall(layout, descriptor)
    assert linked in removed
    assert not linked.is_symlink()
    assert not layout.opt_link(descriptor.name).is_symlink()
    assert not (layout.cellar_dir / descriptor.name).exists()
