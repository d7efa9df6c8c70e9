"""Error hierarchy for formula installs."""

from __future__ import annotations


class TapError(RuntimeError):
    """Base class for every terminal install failure."""


class FormulaSchemaError(TapError):
    """Raised when a formula document is malformed."""


class UnsupportedArchitecture(TapError):
    def __init__(self, architecture: str, supported: tuple[str, ...] = ()) -> None:
        self.architecture = architecture
        self.supported = supported
        detail = f" (supported: {', '.join(supported)})" if supported else ""
        super().__init__(f"unsupported architecture '{architecture}'{detail}")


class DownloadFailure(TapError):
    """Raised when an archive cannot be fetched."""


class ChecksumMismatch(TapError):
    def __init__(self, path: str, expected: str, actual: str) -> None:
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"checksum mismatch for {path}: expected sha256:{expected}, got sha256:{actual}")


class InstallIOError(TapError):
    """Raised when files cannot be placed into the prefix."""


class UnsafeArchiveError(InstallIOError):
    """Raised for archive members that would escape the extraction root."""


class VersionMismatch(TapError):
    def __init__(self, expected: str, output: str) -> None:
        self.expected = expected
        self.output = output
        shown = output.strip() or "<no output>"
        super().__init__(f"expected version '{expected}' in --version output, got: {shown}")


class MissingDependency(TapError):
    def __init__(self, missing: tuple[str, ...]) -> None:
        self.missing = missing
        super().__init__(f"missing runtime dependencies: {', '.join(missing)}")


class ServiceError(TapError):
    """Raised when a service unit cannot be persisted or controlled."""


class ConfigError(TapError):
    """Raised for config.toml values that cannot be interpreted."""
