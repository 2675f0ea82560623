"""Rules for trimming ``share/wine/wine.inf`` down to what a headless prefix needs.

Mostly so wineboot doesn't complain as much or error out when the services,
drivers and WoW64 pieces it references have been removed from the install.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, Tuple

from .rewriter import SectionSink, Transform
from .scanner import Record

ARCHES = ("amd64", "arm64")

UNUSED_SERVICES = (
    "BITS",
    "EventLog",
    "HTTP",
    "MSI",
    "NDIS",
    "NsiProxy",
    "RpcSs",
    "ScardSvr",
    "Spooler",
    "Winmgmt",
    "Sti",
    "PlugPlay",
    "WPFFontCache",
    "LanmanServer",
    "FontCache",
    "TaskScheduler",
    "wuau",
    "Terminal",
)
_SERVICES = "|".join(UNUSED_SERVICES)

SERVICE_SECTION_RE = re.compile(rf"^({_SERVICES})(Services?|ServiceKeys)$")
ADD_SERVICE_RE = re.compile(rf"^AddService=.+,({_SERVICES})(Services?)$")
WOW64_KEY_RE = re.compile(r"CurrentVersionWow64.[^.]+,")

DROP_LINE_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"(^|[^a-z])wineps\.drv"),
    re.compile(r"(^|[^a-z])(sane|gphoto2)\.ds"),
    re.compile(r"(^|[^a-z])(input|winebus|winebth|winehid|mouhid|wineusb|winexinput)\.inf"),
    re.compile(r"(^|[^a-z])(oledb32|msdaps|msdasql|msado15|winprint|sapi)\.dll"),
    re.compile(r"(^|[^a-z])(wmplayer|wordpad|iexplore)\.exe"),
    re.compile(r"^system\.ini,\s*(mci|drivers32|mail)"),
)

WOW64_SECTION_TOKENS = ("CurrentVersionWow64", "Wow64Install", "FakeDllsWin32", "FakeDllsWow64")


@dataclass(frozen=True)
class WineInfOptions:
    optimize: bool = False
    arch: str = "amd64"

    def __post_init__(self) -> None:
        if self.arch not in ARCHES:
            raise ValueError(f"unknown architecture {self.arch!r} (expected one of {', '.join(ARCHES)})")

    @property
    def arm64(self) -> bool:
        return self.arch == "arm64"


def drop_section(section: str, options: WineInfOptions) -> bool:
    if section.endswith(("Install.NT", "Install.NT.Services")):
        return True
    if section.endswith(("Install.ntarm", "Install.ntarm.Services")) and (
        not options.arm64 or options.optimize
    ):
        return True
    if section.endswith(("Install.ntarm64", "Install.ntarm64.Services")) and not options.arm64:
        return True
    if options.optimize and any(token in section for token in WOW64_SECTION_TOKENS):
        return True
    return bool(SERVICE_SECTION_RE.match(section))


def drop_line(section: str, line: str, options: WineInfOptions) -> bool:
    if "winemenubuilder" in line:
        return True
    if options.optimize:
        if section in {"Tapi", "DirectX"}:  # telephony, directx
            return True
        if WOW64_KEY_RE.search(line):
            return True
    if any(pattern.search(line) for pattern in DROP_LINE_PATTERNS):
        return True
    return bool(ADD_SERVICE_RE.match(line.rstrip("\n")))


def wine_inf_transform(options: WineInfOptions) -> Transform:
    def transform(sink: SectionSink, records: Iterator[Record]) -> None:
        for section, line in records:
            if drop_section(section, options):
                continue
            if line and drop_line(section, line, options):
                continue
            sink.emit(section, line)

    return transform
