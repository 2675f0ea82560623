from .imports import (
    DEFAULT_EXCLUDE,
    MODULE_EXTENSIONS,
    ImportScanError,
    ModuleScan,
    load_dependency_json,
    pe_imports,
    scan_module_dir,
)
from .prune import (
    PruneResult,
    Removal,
    canonical_names,
    fold,
    fold_dependency_map,
    prune,
    restrict,
    spelling_table,
)

__all__ = [name for name in globals().keys() if not name.startswith("_")]
