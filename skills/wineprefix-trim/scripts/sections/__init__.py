from .diff import present
from .rewriter import (
    NO_SECTION,
    EmitContractError,
    HeaderState,
    SectionSink,
    Transform,
    emitted_headers,
    passthrough,
    rewrite,
)
from .scanner import Record, RewriteError, UnsupportedFormat, check_format, scan_records
from .wine_inf import WineInfOptions, drop_line, drop_section, wine_inf_transform

__all__ = [name for name in globals().keys() if not name.startswith("_")]
