"""
Size and CPU-list parsing shared by the settings file and the CLI.
"""

from __future__ import annotations

import re

KB = 1024
MB = 1024 * KB
GB = 1024 * MB

_SIZE_RE = re.compile(r"^\s*(\d+)\s*([KMGT]?)(?:I?B)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": KB, "M": MB, "G": GB, "T": 1024 * GB}


def parse_size(value: str | int) -> int:
    """Parse ``"4GB"``, ``"512MiB"``, ``"1048576"`` into bytes.

    Raises:
        ValueError: On malformed input or a zero size.
    """
    if isinstance(value, int):
        size = value
    else:
        m = _SIZE_RE.match(value)
        if not m:
            raise ValueError(f"Invalid size: {value!r} (expected e.g. 512MB, 4GB)")
        size = int(m.group(1)) * _SIZE_UNITS[m.group(2).upper()]
    if size <= 0:
        raise ValueError(f"Size must be positive: {value!r}")
    return size


def format_size(size: int) -> str:
    """Format bytes the way the server config expects (``"4GB"``, ``"384MB"``).

    Whole gigabytes render as GB; everything else is floored to MB.
    """
    if size >= GB and size % GB == 0:
        return f"{size // GB}GB"
    return f"{max(size // MB, 1)}MB"


def parse_cpu_list(value: str) -> list[int]:
    """Parse a CPU list such as ``"0,2,4-7"`` into ordered core ids.

    ``""`` and ``"auto"`` mean no pinning and return an empty list.
    Duplicates are dropped, first occurrence wins.
    """
    text = value.strip().lower()
    if text in ("", "auto", "none"):
        return []

    cores: list[int] = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            lo_s, _, hi_s = part.partition("-")
            if not (lo_s.isdigit() and hi_s.isdigit()) or int(lo_s) > int(hi_s):
                raise ValueError(f"Invalid CPU range: {part!r}")
            span = range(int(lo_s), int(hi_s) + 1)
        elif part.isdigit():
            span = range(int(part), int(part) + 1)
        else:
            raise ValueError(f"Invalid CPU id: {part!r}")
        for core in span:
            if core not in cores:
                cores.append(core)
    return cores
