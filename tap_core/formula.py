"""Formula loading, validation and architecture variant selection."""

from __future__ import annotations

import logging
import platform
import re
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from .errors import FormulaSchemaError, UnsupportedArchitecture
from .types import (
    ArchitectureVariant,
    FormulaDescriptor,
    InstallAction,
    ServiceSpec,
    SmokeTestSpec,
)

logger = logging.getLogger(__name__)

DEFAULT_FORMULA = "music-discord-rpc"

_SHA256_RE = re.compile(r"^[a-f0-9]{64}$")
_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9._+-]*$")

_ARCH_ALIASES: dict[str, str] = {
    "intel": "intel",
    "x86_64": "intel",
    "amd64": "intel",
    "x64": "intel",
    "arm": "arm",
    "arm64": "arm",
    "aarch64": "arm",
}


def normalize_architecture(machine: str) -> str:
    key = (machine or "").strip().lower()
    tag = _ARCH_ALIASES.get(key)
    if tag is None:
        raise UnsupportedArchitecture(machine)
    return tag


def detect_host_architecture() -> str:
    machine = platform.machine()
    logger.debug("detected host machine=%s", machine)
    return normalize_architecture(machine)


def select_variant(descriptor: FormulaDescriptor, host_architecture: str) -> ArchitectureVariant:
    try:
        tag = normalize_architecture(host_architecture)
    except UnsupportedArchitecture:
        raise UnsupportedArchitecture(host_architecture, descriptor.architectures) from None
    variant = descriptor.variants.get(tag)
    if variant is None:
        raise UnsupportedArchitecture(host_architecture, descriptor.architectures)
    return variant


def expand_template(template: str, values: Mapping[str, str]) -> str:
    try:
        return template.format_map(values)
    except KeyError as exc:
        raise FormulaSchemaError(f"unknown placeholder {exc} in {template!r}") from exc
    except (ValueError, IndexError) as exc:
        raise FormulaSchemaError(f"invalid template {template!r}: {exc}") from exc


def load_formula(path: Path) -> FormulaDescriptor:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise FormulaSchemaError(f"unable to read formula {path}: {exc}") from exc
    return parse_formula(text, source=str(path))


def load_builtin_formula(name: str = DEFAULT_FORMULA) -> FormulaDescriptor:
    resource = resources.files("tap_core").joinpath("formulas", f"{name}.yml")
    if not resource.is_file():
        raise FormulaSchemaError(f"no bundled formula named '{name}'")
    return parse_formula(resource.read_text(encoding="utf-8"), source=f"tap_core/formulas/{name}.yml")


def parse_formula(text: str, *, source: str = "<string>") -> FormulaDescriptor:
    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise FormulaSchemaError(f"invalid YAML in {source}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise FormulaSchemaError(f"formula {source} must be a mapping")
    return formula_from_dict(payload)


def formula_from_dict(payload: Mapping[str, Any]) -> FormulaDescriptor:
    name = _required_str(payload, "name")
    if not _NAME_RE.match(name):
        raise FormulaSchemaError(f"invalid formula name: {name!r}")
    version = _required_str(payload, "version")

    variants = _parse_variants(payload.get("variants"), version)

    install_raw = payload.get("install")
    if not isinstance(install_raw, Mapping):
        raise FormulaSchemaError("formula.install must be a mapping")
    executables = _str_tuple(install_raw.get("bin"), "install.bin")
    if not executables:
        raise FormulaSchemaError("formula.install.bin must name at least one executable")
    for executable in executables:
        if "/" in executable or executable in {".", ".."}:
            raise FormulaSchemaError(f"install.bin entries must be plain file names: {executable!r}")

    depends_on = _str_tuple(payload.get("depends_on"), "depends_on")

    service_raw = payload.get("service")
    service = _parse_service(service_raw) if service_raw is not None else None

    test_raw = payload.get("test") or {}
    if not isinstance(test_raw, Mapping):
        raise FormulaSchemaError("formula.test must be a mapping")
    test = SmokeTestSpec(
        args=_str_tuple(test_raw.get("args"), "test.args") or ("--version",),
        expect=str(test_raw.get("expect") or "{version}"),
    )

    return FormulaDescriptor(
        name=name,
        description=str(payload.get("description") or "").strip(),
        homepage=str(payload.get("homepage") or "").strip(),
        version=version,
        license=str(payload.get("license") or "").strip(),
        variants=MappingProxyType(variants),
        install=InstallAction(executables=executables),
        runtime_dependencies=depends_on,
        service=service,
        test=test,
    )


def _parse_variants(raw: Any, version: str) -> dict[str, ArchitectureVariant]:
    if not isinstance(raw, Mapping) or not raw:
        raise FormulaSchemaError("formula.variants must map architectures to url/sha256")
    variants: dict[str, ArchitectureVariant] = {}
    for arch_raw, entry in raw.items():
        try:
            arch = normalize_architecture(str(arch_raw))
        except UnsupportedArchitecture as exc:
            raise FormulaSchemaError(f"unknown architecture in variants: {arch_raw!r}") from exc
        if arch in variants:
            raise FormulaSchemaError(f"duplicate variant for architecture '{arch}'")
        if not isinstance(entry, Mapping):
            raise FormulaSchemaError(f"variants.{arch_raw} must be a mapping")
        url_template = _required_str(entry, "url", prefix=f"variants.{arch_raw}.")
        sha256 = _required_str(entry, "sha256", prefix=f"variants.{arch_raw}.").lower()
        if not _SHA256_RE.match(sha256):
            raise FormulaSchemaError(
                f"variants.{arch_raw}.sha256 must be 64 hex characters, got {len(sha256)}"
            )
        url = expand_template(url_template, {"version": version})
        if not url.startswith("https://"):
            raise FormulaSchemaError(f"variants.{arch_raw}.url must use https: {url}")
        variants[arch] = ArchitectureVariant(arch=arch, url=url, sha256=sha256)
    return variants


def _parse_service(raw: Any) -> ServiceSpec:
    if not isinstance(raw, Mapping):
        raise FormulaSchemaError("formula.service must be a mapping")
    run = _str_tuple(raw.get("run"), "service.run")
    if not run:
        raise FormulaSchemaError("formula.service.run is required")
    environment_raw = raw.get("environment") or {}
    if not isinstance(environment_raw, Mapping):
        raise FormulaSchemaError("formula.service.environment must be a mapping")
    return ServiceSpec(
        run=run,
        keep_alive=bool(raw.get("keep_alive", False)),
        environment=MappingProxyType({str(key): str(value) for key, value in environment_raw.items()}),
        log_path=_optional_str(raw.get("log_path")),
        error_log_path=_optional_str(raw.get("error_log_path")),
        working_dir=_optional_str(raw.get("working_dir")),
    )


def _required_str(payload: Mapping[str, Any], key: str, *, prefix: str = "") -> str:
    raw = payload.get(key)
    if raw is None:
        raise FormulaSchemaError(f"formula.{prefix}{key} is required")
    # YAML reads unquoted 1.10 or all-digit digests as numbers
    if not isinstance(raw, str):
        raise FormulaSchemaError(f"formula.{prefix}{key} must be a quoted string, got {raw!r}")
    value = raw.strip()
    if not value:
        raise FormulaSchemaError(f"formula.{prefix}{key} is required")
    return value


def _optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None


def _str_tuple(value: Any, label: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise FormulaSchemaError(f"formula.{label} must be a list of strings")
    return tuple(str(item) for item in value if str(item).strip())
