"""Formula interpreter for prebuilt binary releases."""

from .config import DownloadConfig, ServiceConfig, TapConfig, load_config
from .dependencies import check_runtime_dependencies
from .download import Downloader, file_sha256_hex, verify_checksum
from .errors import (
    ChecksumMismatch,
    ConfigError,
    DownloadFailure,
    FormulaSchemaError,
    InstallIOError,
    MissingDependency,
    ServiceError,
    TapError,
    UnsafeArchiveError,
    UnsupportedArchitecture,
    VersionMismatch,
)
from .formula import (
    DEFAULT_FORMULA,
    detect_host_architecture,
    load_builtin_formula,
    load_formula,
    normalize_architecture,
    parse_formula,
    select_variant,
)
from .install import install, link_opt, uninstall
from .installer import FormulaInstaller
from .layout import PrefixLayout
from .service import (
    ServiceController,
    ServiceRegistry,
    build_service_unit,
    register_service,
)
from .smoke import run_smoke_test
from .types import (
    ArchitectureVariant,
    FormulaDescriptor,
    InstallAction,
    InstallResult,
    ServiceSpec,
    ServiceUnit,
    SmokeTestSpec,
)

__all__ = [
    "ArchitectureVariant",
    "FormulaDescriptor",
    "InstallAction",
    "InstallResult",
    "ServiceSpec",
    "ServiceUnit",
    "SmokeTestSpec",
    "TapError",
    "FormulaSchemaError",
    "UnsupportedArchitecture",
    "DownloadFailure",
    "ChecksumMismatch",
    "ConfigError",
    "InstallIOError",
    "UnsafeArchiveError",
    "VersionMismatch",
    "MissingDependency",
    "ServiceError",
    "DEFAULT_FORMULA",
    "load_formula",
    "load_builtin_formula",
    "parse_formula",
    "normalize_architecture",
    "detect_host_architecture",
    "select_variant",
    "Downloader",
    "file_sha256_hex",
    "verify_checksum",
    "install",
    "link_opt",
    "uninstall",
    "check_runtime_dependencies",
    "ServiceRegistry",
    "ServiceController",
    "build_service_unit",
    "register_service",
    "run_smoke_test",
    "FormulaInstaller",
    "PrefixLayout",
    "TapConfig",
    "DownloadConfig",
    "ServiceConfig",
    "load_config",
]
