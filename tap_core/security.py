"""Security helpers for download URLs and archive extraction paths."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlsplit

from .errors import DownloadFailure, UnsafeArchiveError


def host_from_url(url: str) -> str:
    value = url.strip()
    if not value:
        raise DownloadFailure("empty download URL")
    parsed = urlsplit(value)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise DownloadFailure(f"invalid download URL: {url!r}")
    return parsed.hostname.lower()


def assert_allowlisted(url: str, allowlist_domains: tuple[str, ...]) -> None:
    host = host_from_url(url)
    if not allowlist_domains:
        return
    for allowed in allowlist_domains:
        key = allowed.strip().lower()
        if not key:
            continue
        if host == key or host.endswith(f".{key}"):
            return
    raise DownloadFailure(f"download host '{host}' is not in allowlist")


def safe_output_path(base_dir: Path, relative_path: str) -> Path:
    target = (base_dir / relative_path).resolve()
    root = base_dir.resolve()
    if target == root:
        return target
    if root not in target.parents:
        raise UnsafeArchiveError(f"path traversal blocked for archive member: {relative_path}")
    return target


def redact_url(url: str) -> str:
    parsed = urlsplit(url)
    if not parsed.password:
        return url
    safe_netloc = parsed.netloc.replace(parsed.password, "***")
    return url.replace(parsed.netloc, safe_netloc)
