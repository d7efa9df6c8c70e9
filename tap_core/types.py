"""Formula datatypes."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping


@dataclass(frozen=True)
class ArchitectureVariant:
    arch: str
    url: str
    sha256: str


@dataclass(frozen=True)
class InstallAction:
    executables: tuple[str, ...]


@dataclass(frozen=True)
class ServiceSpec:
    run: tuple[str, ...]
    keep_alive: bool = False
    environment: Mapping[str, str] = field(default_factory=dict)
    log_path: str | None = None
    error_log_path: str | None = None
    working_dir: str | None = None


@dataclass(frozen=True)
class SmokeTestSpec:
    args: tuple[str, ...] = ("--version",)
    expect: str = "{version}"


@dataclass(frozen=True)
class FormulaDescriptor:
    name: str
    description: str
    homepage: str
    version: str
    license: str
    variants: Mapping[str, ArchitectureVariant]
    install: InstallAction
    runtime_dependencies: tuple[str, ...] = ()
    service: ServiceSpec | None = None
    test: SmokeTestSpec = field(default_factory=SmokeTestSpec)

    @property
    def architectures(self) -> tuple[str, ...]:
        return tuple(sorted(self.variants))


@dataclass(frozen=True)
class ServiceUnit:
    label: str
    program_arguments: tuple[str, ...]
    keep_alive: bool
    environment: Mapping[str, str] = field(default_factory=dict)
    stdout_path: Path | None = None
    stderr_path: Path | None = None
    working_dir: Path | None = None


@dataclass(frozen=True)
class InstallResult:
    name: str
    version: str
    arch: str
    archive: Path
    files: tuple[Path, ...]
    service: ServiceUnit | None = None
    smoke_test_passed: bool | None = None
