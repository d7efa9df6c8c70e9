"""Sequential install pipeline for a single formula."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from .config import TapConfig
from .dependencies import check_runtime_dependencies
from .download import Downloader, verify_checksum
from .errors import ChecksumMismatch, DownloadFailure, InstallIOError
from .formula import detect_host_architecture, select_variant
from .install import install as install_executables, link_opt, uninstall as remove_keg
from .install_state import read_install_receipt, remove_install_receipt, write_install_receipt
from .layout import PrefixLayout
from .service import ServiceRegistry, register_service, service_label
from .smoke import run_smoke_test
from .types import ArchitectureVariant, FormulaDescriptor, InstallResult, ServiceUnit

logger = logging.getLogger(__name__)


class FormulaInstaller:
    """Select, fetch, verify, place, supervise and test one formula release.

    Steps run strictly one after another and every failure is terminal; nothing
    is retried here.
    """

    def __init__(
        self,
        descriptor: FormulaDescriptor,
        layout: PrefixLayout,
        config: TapConfig | None = None,
        *,
        downloader: Downloader | None = None,
        registry: ServiceRegistry | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.layout = layout
        self.config = config or TapConfig()
        self.downloader = downloader or Downloader(self.config.download)
        self._registry = registry

    @property
    def registry(self) -> ServiceRegistry:
        if self._registry is None:
            self._registry = ServiceRegistry(
                self.config.service.registry_dir,
                backend=self.config.service.backend,
            )
        return self._registry

    def resolve_variant(self, host_architecture: str | None = None) -> ArchitectureVariant:
        arch = host_architecture or detect_host_architecture()
        variant = select_variant(self.descriptor, arch)
        logger.debug("selected variant arch=%s url=%s", variant.arch, variant.url)
        return variant

    def archive_cache_path(self, variant: ArchitectureVariant) -> Path:
        return self.layout.cache_dir / f"{self.descriptor.name}--{self.descriptor.version}--{variant.arch}.tar.gz"

    def fetch(self, variant: ArchitectureVariant) -> Path:
        archive = self.archive_cache_path(variant)
        if archive.exists():
            try:
                verify_checksum(archive, variant.sha256)
                logger.debug("using cached archive %s", archive)
                return archive
            except ChecksumMismatch:
                logger.info("discarding cached archive with stale checksum: %s", archive)
                try:
                    archive.unlink()
                except OSError as exc:
                    raise DownloadFailure(f"cannot discard stale cached archive {archive}: {exc}") from exc

        self.downloader.fetch(variant.url, archive)
        try:
            verify_checksum(archive, variant.sha256)
        except ChecksumMismatch:
            archive.unlink(missing_ok=True)
            raise
        return archive

    def install(
        self,
        host_architecture: str | None = None,
        *,
        register_service: bool = False,
        run_test: bool = True,
        check_dependencies: bool = True,
    ) -> InstallResult:
        descriptor = self.descriptor
        variant = self.resolve_variant(host_architecture)
        if check_dependencies:
            check_runtime_dependencies(descriptor, self.layout)

        archive = self.fetch(variant)
        keg_bin = self.layout.keg_bin_dir(descriptor.name, descriptor.version)
        files = install_executables(descriptor, archive, keg_bin)
        link_opt(self.layout, descriptor)

        # a failed smoke test must not leave a receipt or a supervised unit behind
        passed = None
        if run_test:
            passed = run_smoke_test(
                descriptor,
                keg_bin / descriptor.install.executables[0],
                timeout_seconds=self.config.smoke_timeout_seconds,
            )

        unit = None
        if register_service:
            unit = self.register_service()

        write_install_receipt(
            self.layout,
            descriptor.name,
            {
                "name": descriptor.name,
                "version": descriptor.version,
                "arch": variant.arch,
                "url": variant.url,
                "sha256": variant.sha256,
                "files": [str(path) for path in files],
                "installed_at": datetime.now(timezone.utc).isoformat(),
                "service_label": unit.label if unit is not None else None,
            },
        )
        logger.info("installed %s %s (%s)", descriptor.name, descriptor.version, variant.arch)

        return InstallResult(
            name=descriptor.name,
            version=descriptor.version,
            arch=variant.arch,
            archive=archive,
            files=files,
            service=unit,
            smoke_test_passed=passed,
        )

    def register_service(self) -> ServiceUnit:
        return register_service(self.descriptor, self.layout, self.registry)

    def test(self) -> bool:
        executable = self.layout.opt_bin_dir(self.descriptor.name) / self.descriptor.install.executables[0]
        return run_smoke_test(self.descriptor, executable, timeout_seconds=self.config.smoke_timeout_seconds)

    def uninstall(self, *, keep_service: bool = False) -> list[Path]:
        receipt = read_install_receipt(self.layout, self.descriptor.name)
        if receipt is None and not self.layout.keg_dir(self.descriptor.name, self.descriptor.version).exists():
            raise InstallIOError(f"{self.descriptor.name} is not installed in {self.layout.prefix}")
        removed = remove_keg(self.layout, self.descriptor)
        if not keep_service and self.descriptor.service is not None:
            label = (receipt or {}).get("service_label") or service_label(self.descriptor.name, self.registry.backend)
            if self.registry.unregister(label):
                removed.append(self.registry.unit_path(label))
        remove_install_receipt(self.layout, self.descriptor.name)
        return removed
