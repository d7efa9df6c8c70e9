"""Archive download and checksum verification."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

import requests

from .config import DownloadConfig
from .errors import ChecksumMismatch, DownloadFailure
from .security import assert_allowlisted, redact_url

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


def file_sha256_hex(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_checksum(path: Path, expected: str) -> str:
    actual = file_sha256_hex(path)
    if actual != expected.strip().lower():
        raise ChecksumMismatch(str(path), expected, actual)
    logger.debug("checksum ok path=%s sha256=%s", path, actual)
    return actual


class Downloader:
    """Single-shot HTTP fetcher; callers treat every failure as terminal."""

    def __init__(self, config: DownloadConfig | None = None) -> None:
        self.config = config or DownloadConfig()

    def fetch(self, url: str, dest: Path) -> Path:
        assert_allowlisted(url, self.config.allowlist_domains)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DownloadFailure(f"cannot create download directory {dest.parent}: {exc}") from exc
        partial = dest.with_name(dest.name + ".part")
        logger.debug("download start url=%s dest=%s", redact_url(url), dest)
        try:
            response = requests.get(
                url,
                stream=True,
                timeout=max(float(self.config.timeout_seconds), 1.0),
                headers={"User-Agent": self.config.user_agent},
            )
        except requests.RequestException as exc:
            raise DownloadFailure(f"download failed for {redact_url(url)}: {exc}") from exc

        try:
            if response.status_code >= 400:
                raise DownloadFailure(f"download failed: HTTP {response.status_code} for {redact_url(url)}")
            self._write_stream(response, partial)
        except (DownloadFailure, requests.RequestException, OSError) as exc:
            partial.unlink(missing_ok=True)
            if isinstance(exc, DownloadFailure):
                raise
            raise DownloadFailure(f"download interrupted for {redact_url(url)}: {exc}") from exc
        finally:
            response.close()

        try:
            os.replace(partial, dest)
        except OSError as exc:
            partial.unlink(missing_ok=True)
            raise DownloadFailure(f"cannot move download into place at {dest}: {exc}") from exc
        logger.debug("download done dest=%s size=%s", dest, dest.stat().st_size)
        return dest

    def _write_stream(self, response: requests.Response, target: Path) -> None:
        limit = self.config.max_download_bytes
        total = 0
        with target.open("wb") as handle:
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                if not chunk:
                    continue
                total += len(chunk)
                if limit is not None and total > limit:
                    raise DownloadFailure(f"download size exceeds configured limit {limit} bytes")
                handle.write(chunk)
