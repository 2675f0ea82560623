from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Sequence

import pefile

from .prune import canonical_names, fold

MODULE_EXTENSIONS = (".dll", ".exe")
# explorer.exe is patched in place and loaded by name, never through imports
DEFAULT_EXCLUDE = ("explorer.exe",)

Extractor = Callable[[Path], List[str]]


class ImportScanError(RuntimeError):
    pass


@dataclass
class ModuleScan:
    deps: Dict[str, List[str]] = field(default_factory=dict)
    canonical: Dict[str, str] = field(default_factory=dict)


def pe_imports(path: Path) -> List[str]:
    """List the libraries a DLL or EXE imports, in import table order."""
    try:
        pe = pefile.PE(str(path), fast_load=True)
    except (pefile.PEFormatError, OSError) as exc:
        raise ImportScanError(f"get deps for {path.name!r}: {exc}") from exc
    try:
        pe.parse_data_directories(
            directories=[pefile.DIRECTORY_ENTRY["IMAGE_DIRECTORY_ENTRY_IMPORT"]]
        )
        return [
            entry.dll.decode("ascii", errors="replace")
            for entry in getattr(pe, "DIRECTORY_ENTRY_IMPORT", [])
        ]
    finally:
        pe.close()


def scan_module_dir(
    directory: Path,
    *,
    extensions: Sequence[str] = MODULE_EXTENSIONS,
    exclude: Sequence[str] = DEFAULT_EXCLUDE,
    extractor: Extractor = pe_imports,
) -> ModuleScan:
    """Build the import graph of every module directly inside ``directory``.

    Keys and import names keep their on-disk / import-table spelling; the
    pruner folds them. ``canonical`` maps folded names to the file names
    present in the directory.
    """
    wanted = {ext.lower() for ext in extensions}
    skipped = {fold(name) for name in exclude}
    entries = sorted(directory.iterdir())
    scan = ModuleScan(canonical=canonical_names(entry.name for entry in entries))
    for entry in entries:
        if entry.is_dir():
            continue
        if entry.suffix.lower() not in wanted:
            continue
        if fold(entry.name) in skipped:
            continue
        scan.deps[entry.name] = list(extractor(entry))
    return scan


def load_dependency_json(path: Path) -> Dict[str, List[str]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"{path}: expected a JSON object of name -> [dependencies]")
    deps: Dict[str, List[str]] = {}
    for name, edges in payload.items():
        if not isinstance(edges, list) or not all(isinstance(edge, str) for edge in edges):
            raise ValueError(f"{path}: dependencies of {name!r} must be a list of strings")
        deps[name] = list(edges)
    return deps
