from __future__ import annotations

import sys
from typing import List


def progress(message: str, done: bool = False) -> None:
    """Print a progress message to stderr (doesn't interfere with stdout output)."""
    if done:
        print(f"  [done] {message}", file=sys.stderr)
    else:
        print(f"  [....] {message}", file=sys.stderr)


def report_warnings(warnings: List[str]) -> None:
    for warning in warnings:
        print(f"warning: {warning}", file=sys.stderr)
