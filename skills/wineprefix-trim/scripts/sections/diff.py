from __future__ import annotations

import difflib
from typing import List

from .scanner import decode, iter_lines

DIM = "\x1b[2m"
RESET = "\x1b[0m"
LINE_COLORS = {"-": "\x1b[31m", "+": "\x1b[32m"}


def unified_lines(before_label: str, before: bytes, after_label: str, after: bytes) -> List[str]:
    return list(
        difflib.unified_diff(
            list(iter_lines(decode(before))),
            list(iter_lines(decode(after))),
            fromfile=before_label,
            tofile=after_label,
        )
    )


def present(
    before_label: str,
    before: bytes,
    after_label: str,
    after: bytes,
    *,
    indent: str = "",
    color: bool = False,
) -> str:
    """Render a unified diff of two buffers. Empty when they are identical."""
    lines = unified_lines(before_label, before, after_label, after)
    if not lines:
        return ""
    rendered: List[str] = []
    for line in lines:
        text = line.rstrip("\n")
        if not color:
            rendered.append(f"{indent}{text}")
            continue
        marker = LINE_COLORS.get(text[:1], "")
        rendered.append(f"{DIM}{indent}{marker}{text}{RESET}")
    return "\n".join(rendered) + "\n"
