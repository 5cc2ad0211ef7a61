"""Utility helpers for file IO, run ids, and checksums."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml


def new_run_id(prefix: str = "setup") -> str:
    """Return a run id that ties every step result of one execution together."""
    return f"{prefix}_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}"


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML document into a dictionary."""
    with Path(path).open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping YAML in {path}")
    return data


def load_json(path: str | Path) -> dict[str, Any]:
    """Load a JSON file into a dictionary."""
    with Path(path).open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping JSON in {path}")
    return data


def write_json(path: str | Path, payload: dict[str, Any]) -> Path:
    """Write a JSON document, creating parent folders."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(json.dumps(payload, indent=2, default=str) + "\n", encoding="utf-8")
    return file_path


def sha256_for_file(path: str | Path) -> str:
    """Compute SHA-256 checksum for upload manifests."""
    digest = hashlib.sha256()
    with Path(path).open("rb") as fh:
        for chunk in iter(lambda: fh.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()
