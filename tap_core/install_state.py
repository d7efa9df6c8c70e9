"""Install receipts for formula kegs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .errors import InstallIOError
from .layout import PrefixLayout


def install_receipt_path(layout: PrefixLayout, name: str) -> Path:
    return layout.state_dir / "receipts" / f"{name}.json"


def read_install_receipt(layout: PrefixLayout, name: str) -> dict[str, Any] | None:
    path = install_receipt_path(layout, name)
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    return _normalize_receipt(payload)


def write_install_receipt(layout: PrefixLayout, name: str, payload: dict[str, Any]) -> Path:
    path = install_receipt_path(layout, name)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), encoding="utf-8")
    except OSError as exc:
        raise InstallIOError(f"cannot write install receipt {path}: {exc}") from exc
    return path


def remove_install_receipt(layout: PrefixLayout, name: str) -> bool:
    path = install_receipt_path(layout, name)
    if not path.exists():
        return False
    path.unlink()
    return True


def _normalize_receipt(payload: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(payload)
    files = normalized.get("files")
    normalized["files"] = [str(item) for item in files] if isinstance(files, list) else []
    if "service_label" not in normalized:
        normalized["service_label"] = None
    return normalized
