"""
Version helpers — semantic version checks and byte-size formatting.

Pure functions, no state.
"""

from __future__ import annotations

import math
import re

_VERSION_RE = re.compile(r"\d+\.\d+\.\d+", re.ASCII)

_BYTE_UNITS = ("KiB", "MiB", "GiB", "TiB")

DEFAULT_VERSION = "0.0.1"


def is_valid_version(version: str | None) -> bool:
    """True if ``version`` (trimmed) is exactly ``MAJOR.MINOR.PATCH``.

    >>> is_valid_version(" 1.2.3 ")
    True
    >>> is_valid_version("1.2")
    False
    """
    return bool(_VERSION_RE.fullmatch((version or "").strip()))


def next_patch_version(version: str | None) -> str:
    """Increment the patch part, or return ``0.0.1`` for an invalid version."""
    value = (version or "").strip()
    if not is_valid_version(value):
        return DEFAULT_VERSION
    major, minor, patch = (int(part) for part in value.split("."))
    return f"{major}.{minor}.{patch + 1}"


def format_bytes(size: float | int | None) -> str:
    """Human-readable binary size: ``512 B``, ``1.5 KiB`` ... ``TiB``.

    Negative and non-finite inputs render as ``-``.  Values past 1024 TiB
    stay in TiB.
    """
    try:
        value = float(size or 0)
    except (TypeError, ValueError):
        return "-"
    if not math.isfinite(value) or value < 0:
        return "-"
    if value < 1024:
        return f"{int(value) if value.is_integer() else value} B"

    unit = -1
    while value >= 1024 and unit < len(_BYTE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f} {_BYTE_UNITS[unit]}"
