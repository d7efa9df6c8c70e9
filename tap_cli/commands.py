"""Builtin tap commands."""

from __future__ import annotations

import json
from argparse import ArgumentParser, Namespace
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable

from tap_core import (
    FormulaDescriptor,
    FormulaInstaller,
    PrefixLayout,
    ServiceController,
    ServiceRegistry,
    TapConfig,
    build_service_unit,
    load_builtin_formula,
    load_config,
    load_formula,
)
from tap_core.install_state import read_install_receipt

COMMANDS: dict[str, type["TapCommand"]] = {}


def tapcommand(*, name: str) -> Callable[[type["TapCommand"]], type["TapCommand"]]:
    def _register(cls: type["TapCommand"]) -> type["TapCommand"]:
        cls.name = name
        COMMANDS[name] = cls
        return cls

    return _register


class TapCommand:
    name = ""

    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        return None

    def run(self, argv: Namespace) -> int:
        raise NotImplementedError

    def _say(self, message: str) -> None:
        print(f"[tap:{self.name}] {message}")


class _PrefixAwareCommand(TapCommand):
    def _layout(self, argv: Namespace) -> PrefixLayout:
        return PrefixLayout.resolve(getattr(argv, "prefix", None))

    def _config(self, argv: Namespace, layout: PrefixLayout) -> TapConfig:
        return load_config(layout, getattr(argv, "config", None))

    def _formula(self, argv: Namespace) -> FormulaDescriptor:
        path = str(getattr(argv, "formula", "") or "").strip()
        if path:
            return load_formula(Path(path))
        return load_builtin_formula()

    def _installer(self, argv: Namespace) -> FormulaInstaller:
        layout = self._layout(argv)
        config = self._config(argv, layout)
        return FormulaInstaller(self._formula(argv), layout, config)


@tapcommand(name="info")
class InfoCommand(_PrefixAwareCommand):
    """Show the formula and the variant selected for this host."""

    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        parser.add_argument("--arch", default=None, help="Override detected CPU architecture")
        parser.add_argument("--format", choices=["text", "json"], default="text")

    def run(self, argv: Namespace) -> int:
        installer = self._installer(argv)
        descriptor = installer.descriptor
        variant = installer.resolve_variant(getattr(argv, "arch", None))
        receipt = read_install_receipt(installer.layout, descriptor.name)
        payload: dict[str, Any] = {
            "name": descriptor.name,
            "description": descriptor.description,
            "homepage": descriptor.homepage,
            "version": descriptor.version,
            "license": descriptor.license,
            "depends_on": list(descriptor.runtime_dependencies),
            "architectures": list(descriptor.architectures),
            "selected": asdict(variant),
            "installed": receipt.get("version") if receipt else None,
        }
        if str(getattr(argv, "format", "text")) == "json":
            print(json.dumps(payload, indent=2))
            return 0
        print(f"{descriptor.name}: {descriptor.description}")
        print(f"  version:  {descriptor.version} ({descriptor.license})")
        print(f"  homepage: {descriptor.homepage}")
        if descriptor.runtime_dependencies:
            print(f"  depends:  {', '.join(descriptor.runtime_dependencies)}")
        print(f"  variant:  {variant.arch} {variant.url}")
        print(f"  sha256:   {variant.sha256}")
        print(f"  installed: {payload['installed'] or 'no'}")
        return 0


@tapcommand(name="fetch")
class FetchCommand(_PrefixAwareCommand):
    """Download and verify the archive without installing it."""

    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        parser.add_argument("--arch", default=None, help="Override detected CPU architecture")

    def run(self, argv: Namespace) -> int:
        installer = self._installer(argv)
        variant = installer.resolve_variant(getattr(argv, "arch", None))
        archive = installer.fetch(variant)
        self._say(f"verified sha256:{variant.sha256}")
        self._say(f"archive={archive}")
        return 0


@tapcommand(name="install")
class InstallCommand(_PrefixAwareCommand):
    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        parser.add_argument("--arch", default=None, help="Override detected CPU architecture")
        parser.add_argument("--with-service", action="store_true", help="Register the background service")
        parser.add_argument("--skip-test", action="store_true", help="Do not run the post-install smoke test")
        parser.add_argument(
            "--ignore-dependencies",
            action="store_true",
            help="Install even when runtime dependencies are missing",
        )

    def run(self, argv: Namespace) -> int:
        installer = self._installer(argv)
        result = installer.install(
            getattr(argv, "arch", None),
            register_service=bool(getattr(argv, "with_service", False)),
            run_test=not bool(getattr(argv, "skip_test", False)),
            check_dependencies=not bool(getattr(argv, "ignore_dependencies", False)),
        )
        self._say(f"installed {result.name}@{result.version} arch={result.arch}")
        for path in result.files:
            self._say(f"file={path}")
        if result.service is not None:
            self._say(f"service={result.service.label}")
        if result.smoke_test_passed:
            self._say("smoke test passed")
        return 0


@tapcommand(name="uninstall")
class UninstallCommand(_PrefixAwareCommand):
    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        parser.add_argument("--keep-service", action="store_true", help="Leave the service unit registered")

    def run(self, argv: Namespace) -> int:
        installer = self._installer(argv)
        removed = installer.uninstall(keep_service=bool(getattr(argv, "keep_service", False)))
        self._say(f"uninstalled {installer.descriptor.name} ({len(removed)} paths removed)")
        return 0


@tapcommand(name="test")
class SmokeTestCommand(_PrefixAwareCommand):
    """Run the smoke test against the linked executable."""

    def run(self, argv: Namespace) -> int:
        installer = self._installer(argv)
        installer.test()
        self._say(f"{installer.descriptor.name} reports version {installer.descriptor.version}")
        return 0


@tapcommand(name="service")
class ServiceCommand(_PrefixAwareCommand):
    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        parser.add_argument(
            "action",
            choices=["register", "unregister", "list", "show", "start", "stop", "restart"],
        )
        parser.add_argument("--backend", choices=["launchd", "systemd"], default=None)
        parser.add_argument("--registry-dir", default=None, help="Directory holding service unit files")

    def run(self, argv: Namespace) -> int:
        installer = self._installer(argv)
        backend = getattr(argv, "backend", None)
        registry_dir = getattr(argv, "registry_dir", None)
        if backend or registry_dir:
            installer = FormulaInstaller(
                installer.descriptor,
                installer.layout,
                installer.config,
                registry=ServiceRegistry(
                    Path(registry_dir) if registry_dir else installer.config.service.registry_dir,
                    backend=backend or installer.config.service.backend,
                ),
            )
        registry = installer.registry
        label = build_service_unit(installer.descriptor, installer.layout, backend=registry.backend).label
        action = str(argv.action)

        if action == "register":
            unit = installer.register_service()
            self._say(f"registered {unit.label} at {registry.unit_path(unit.label)}")
        elif action == "unregister":
            removed = registry.unregister(label)
            self._say(f"{'removed' if removed else 'not registered'}: {label}")
        elif action == "list":
            for item in registry.units():
                print(item)
        elif action == "show":
            unit = registry.load(label)
            if unit is None:
                self._say(f"not registered: {label}")
                return 1
            print(json.dumps(asdict(unit), indent=2, default=str))
        else:
            controller = ServiceController(registry)
            getattr(controller, action)(label)
            self._say(f"{action} {label}")
        return 0
