from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

from .scanner import NEWLINE, Record, RewriteError, encode, scan_records


class EmitContractError(RuntimeError):
    """A transform called emit() with arguments that cannot be serialized."""


@dataclass(frozen=True)
class HeaderState:
    """Section the output is currently in; ``name is None`` means NoSection."""

    name: Optional[str] = None

    @property
    def in_section(self) -> bool:
        return self.name is not None

    def advance(self, section: str, line: str) -> Tuple["HeaderState", bool]:
        """Return the next state and whether a ``[section]`` header must be written."""
        if not section:
            return self, False
        if not line or self.name != section:
            return HeaderState(section), True
        return self, False


NO_SECTION = HeaderState()


class SectionSink:
    def __init__(self) -> None:
        self._out = io.StringIO()
        self._state = NO_SECTION
        self.emitted = 0

    @property
    def state(self) -> HeaderState:
        return self._state

    def emit(self, section: str, line: str = "") -> None:
        if not section and not line:
            raise EmitContractError("emitted empty section/line")
        if line and not line.endswith(NEWLINE):
            raise EmitContractError(f"line must end with newline: {line!r}")
        self._state, write_header = self._state.advance(section, line)
        if write_header:
            self._out.write(f"[{section}]{NEWLINE}")
        if line:
            self._out.write(line)
        self.emitted += 1

    def getvalue(self) -> bytes:
        return encode(self._out.getvalue())


Transform = Callable[[SectionSink, Iterator[Record]], None]


def rewrite(
    buffer: bytes,
    transform: Transform,
    *,
    label: str = "<buffer>",
    operation: str = "filter sections",
) -> bytes:
    """Run ``transform`` over the records of ``buffer`` and serialize what it emits.

    Headers are written automatically whenever an emitted line belongs to a
    different section than the previous one, and for every header-only
    emission. A line passed through unchanged keeps its exact bytes.

    Failures raised by the transform are wrapped in :class:`RewriteError`.
    :class:`EmitContractError` is a bug in the transform and propagates as is.
    Nothing is returned unless the whole transform succeeds.
    """
    records = scan_records(buffer, label=label)
    sink = SectionSink()
    try:
        transform(sink, records)
    except EmitContractError:
        raise
    except Exception as exc:
        raise RewriteError(f"{operation} {label}: {exc}", label=label) from exc
    return sink.getvalue()


def passthrough(sink: SectionSink, records: Iterator[Record]) -> None:
    for section, line in records:
        sink.emit(section, line)


def emitted_headers(buffer: bytes) -> List[str]:
    return [record.section for record in scan_records(buffer) if record.is_header]
