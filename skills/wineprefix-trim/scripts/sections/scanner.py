from __future__ import annotations

from typing import Iterator, NamedTuple

NEWLINE = "\n"
ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"


class RewriteError(Exception):
    def __init__(self, message: str, *, label: str = "") -> None:
        super().__init__(message)
        self.label = label


class UnsupportedFormat(RewriteError):
    """Buffer uses a line terminator convention other than bare newlines."""


class Record(NamedTuple):
    section: str
    line: str

    @property
    def is_header(self) -> bool:
        return self.line == ""


def decode(buffer: bytes) -> str:
    return buffer.decode(ENCODING, errors=ENCODING_ERRORS)


def encode(text: str) -> bytes:
    return text.encode(ENCODING, errors=ENCODING_ERRORS)


def header_name(line: str) -> str | None:
    if not (line.startswith("[") and line.endswith("]" + NEWLINE)):
        return None
    name = line[1 : -len("]" + NEWLINE)]
    # "[]" opens nothing; it stays a content line
    return name or None


def check_format(buffer: bytes, *, label: str = "<buffer>") -> None:
    if b"\r" in buffer:
        raise UnsupportedFormat(f"{label}: expected linux-style newlines", label=label)
    if buffer and not buffer.endswith(b"\n"):
        raise UnsupportedFormat(f"{label}: last line has no trailing newline", label=label)


def iter_lines(text: str) -> Iterator[str]:
    # str.splitlines would also break on \x0b, \x1c, \u2028 and friends
    start = 0
    while start < len(text):
        end = text.find(NEWLINE, start)
        end = len(text) if end == -1 else end + 1
        yield text[start:end]
        start = end


def _records(text: str) -> Iterator[Record]:
    current = ""
    for line in iter_lines(text):
        name = header_name(line)
        if name is not None:
            current = name
            yield Record(current, "")
            continue
        yield Record(current, line)


def scan_records(buffer: bytes, *, label: str = "<buffer>") -> Iterator[Record]:
    """Split a sectioned buffer into header and content records in source order.

    The format check runs before the iterator is returned, so a bad buffer
    fails before any record reaches the caller.
    """
    check_format(buffer, label=label)
    return _records(decode(buffer))
