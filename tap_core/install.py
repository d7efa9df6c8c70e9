"""Placement of formula executables into a prefix."""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
from pathlib import Path

from .download import verify_checksum
from .errors import InstallIOError
from .layout import PrefixLayout
from .security import safe_output_path
from .types import FormulaDescriptor

logger = logging.getLogger(__name__)

EXECUTABLE_MODE = 0o755


def install(
    descriptor: FormulaDescriptor,
    archive_path: Path,
    target_bin_dir: Path,
    *,
    expected_sha256: str | None = None,
) -> tuple[Path, ...]:
    """Copy the formula's executables out of ``archive_path`` into ``target_bin_dir``.

    All executables are staged next to their final location and renamed only
    once every one of them was written, so a failure leaves ``target_bin_dir``
    as it was. A checksum, when given, is verified before anything is written.
    """

    if expected_sha256 is not None:
        try:
            verify_checksum(archive_path, expected_sha256)
        except OSError as exc:
            raise InstallIOError(f"unable to read archive {archive_path}: {exc}") from exc

    staged: list[tuple[Path, Path]] = []
    try:
        with _open_archive(archive_path) as archive:
            members = _index_members(archive, target_bin_dir)
            selected: list[tuple[str, tarfile.TarInfo]] = []
            for executable in descriptor.install.executables:
                member = members.get(executable)
                if member is None:
                    raise InstallIOError(f"executable '{executable}' not found in {archive_path.name}")
                selected.append((executable, member))
            # the target directory is only created once every executable was found
            target_bin_dir.mkdir(parents=True, exist_ok=True)
            for executable, member in selected:
                temp_path = _stage_member(archive, member, target_bin_dir)
                staged.append((temp_path, target_bin_dir / executable))
        for temp_path, final_path in staged:
            os.replace(temp_path, final_path)
    except InstallIOError:
        _discard(staged)
        raise
    except (OSError, tarfile.TarError) as exc:
        _discard(staged)
        raise InstallIOError(f"install into {target_bin_dir} failed: {exc}") from exc

    installed = tuple(final for _, final in staged)
    logger.debug("installed files=%s", [str(path) for path in installed])
    return installed


def link_opt(layout: PrefixLayout, descriptor: FormulaDescriptor) -> tuple[Path, ...]:
    """Point ``opt/<name>`` at the current keg and link executables into ``bin``."""

    keg = layout.keg_dir(descriptor.name, descriptor.version)
    opt_link = layout.opt_link(descriptor.name)
    linked: list[Path] = []
    try:
        layout.opt_dir.mkdir(parents=True, exist_ok=True)
        _replace_symlink(opt_link, keg)
        linked.append(opt_link)
        layout.bin_dir.mkdir(parents=True, exist_ok=True)
        for executable in descriptor.install.executables:
            link = layout.bin_dir / executable
            _replace_symlink(link, layout.opt_bin_dir(descriptor.name) / executable)
            linked.append(link)
    except OSError as exc:
        raise InstallIOError(f"unable to link {descriptor.name} into {layout.prefix}: {exc}") from exc
    return tuple(linked)


def uninstall(layout: PrefixLayout, descriptor: FormulaDescriptor) -> list[Path]:
    removed: list[Path] = []
    try:
        for executable in descriptor.install.executables:
            link = layout.bin_dir / executable
            if link.is_symlink():
                link.unlink()
                removed.append(link)
        opt_link = layout.opt_link(descriptor.name)
        if opt_link.is_symlink():
            opt_link.unlink()
            removed.append(opt_link)
        formula_cellar = layout.cellar_dir / descriptor.name
        if formula_cellar.exists():
            shutil.rmtree(formula_cellar)
            removed.append(formula_cellar)
    except OSError as exc:
        raise InstallIOError(f"unable to uninstall {descriptor.name}: {exc}") from exc
    return removed


def _open_archive(archive_path: Path) -> tarfile.TarFile:
    try:
        return tarfile.open(archive_path, "r:*")
    except (OSError, tarfile.TarError) as exc:
        raise InstallIOError(f"unable to open archive {archive_path}: {exc}") from exc


def _index_members(archive: tarfile.TarFile, root: Path) -> dict[str, tarfile.TarInfo]:
    # Shallowest regular file wins when a name appears more than once.
    found: dict[str, tarfile.TarInfo] = {}
    for member in archive.getmembers():
        safe_output_path(root, member.name)
        if not member.isreg():
            continue
        basename = Path(member.name).name
        current = found.get(basename)
        if current is None or member.name.count("/") < current.name.count("/"):
            found[basename] = member
    return found


def _stage_member(archive: tarfile.TarFile, member: tarfile.TarInfo, target_dir: Path) -> Path:
    source = archive.extractfile(member)
    if source is None:
        raise InstallIOError(f"archive member {member.name} is not a regular file")
    fd, temp_name = tempfile.mkstemp(prefix=f".{Path(member.name).name}.", suffix=".partial", dir=target_dir)
    temp_path = Path(temp_name)
    try:
        with source, os.fdopen(fd, "wb") as handle:
            shutil.copyfileobj(source, handle)
        os.chmod(temp_path, EXECUTABLE_MODE)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
    return temp_path


def _discard(staged: list[tuple[Path, Path]]) -> None:
    for temp_path, _ in staged:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            logger.warning("unable to remove staged file %s", temp_path)


def _replace_symlink(link: Path, target: Path) -> None:
    if link.is_symlink() or link.is_file():
        link.unlink()
    elif link.exists():
        raise InstallIOError(f"refusing to replace directory {link} with a link")
    link.symlink_to(target)
