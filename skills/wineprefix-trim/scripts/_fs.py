"""Filesystem pattern helpers.

Rules:
- write reports under workspace/ unless an absolute output dir is given
- print only small summaries/previews (never dump huge payloads to stdout)
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

WORKSPACE_DIR = Path("workspace")


def ensure_workspace() -> Path:
    WORKSPACE_DIR.mkdir(parents=True, exist_ok=True)
    return WORKSPACE_DIR


def workspace_root() -> Path:
    return ensure_workspace()


def _resolve_path(out_dir: Path, filename: str) -> Path:
    path = out_dir / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def write_text(out_dir: Path, filename: str, text: str) -> Path:
    path = _resolve_path(out_dir, filename)
    path.write_text(text, encoding="utf-8")
    return path


def write_json(out_dir: Path, filename: str, obj: Any) -> Path:
    path = _resolve_path(out_dir, filename)
    path.write_text(json.dumps(obj, ensure_ascii=True, indent=2), encoding="utf-8")
    return path

