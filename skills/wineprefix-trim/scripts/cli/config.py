from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

CONFIG_FILES = (".wineprefix-trim.json",)
DEFAULTS: Dict[str, object] = {
    "optimize": False,
    "arch": "amd64",
    "exclude": ["explorer.exe"],
    "extensions": [".dll", ".exe"],
}


def normalize_str_list(value: Any) -> List[str]:
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    if isinstance(value, list):
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return []


def normalize_extensions(value: Any) -> List[str]:
    """Lowercase suffixes with a leading dot, as compared against file names."""
    return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in normalize_str_list(value)]


def find_config(cwd: Path, explicit: Optional[str]) -> Optional[Path]:
    if explicit:
        return Path(explicit)
    for filename in CONFIG_FILES:
        path = cwd / filename
        if path.exists():
            return path
    return None


def load_config(path: Optional[Path], warnings: List[str]) -> Dict[str, object]:
    if path is None:
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        warnings.append(f"Failed to parse {path}: {exc}")
        return {}
    if not isinstance(payload, dict):
        warnings.append(f"Invalid {path}: expected a JSON object")
        return {}
    config: Dict[str, object] = {}
    if isinstance(payload.get("optimize"), bool):
        config["optimize"] = payload["optimize"]
    arch = payload.get("arch")
    if isinstance(arch, str) and arch.strip():
        config["arch"] = arch.strip()
    if "exclude" in payload:
        config["exclude"] = normalize_str_list(payload.get("exclude"))
    if "extensions" in payload:
        config["extensions"] = normalize_extensions(payload.get("extensions"))
    return config


def resolve_setting(explicit: Any, config: Dict[str, object], key: str) -> Any:
    """Explicit flag > config file > built-in default."""
    if explicit is not None:
        return explicit
    if key in config:
        return config[key]
    return DEFAULTS[key]


def resolve_out_dir(out_arg: Optional[str], *, workspace_root: Path) -> Path:
    if out_arg:
        out_path = Path(out_arg)
        if out_path.is_absolute():
            return out_path
        out_str = out_path.as_posix()
        if out_str.startswith("workspace/"):
            out_path = Path(out_str[len("workspace/") :])
        return (workspace_root / out_path).resolve()
    return (workspace_root / "wineprefix-trim").resolve()
