"""Tolerant conversion of raw query values.

These helpers never raise. The soft fallback (0 / None / False) is what lets
the option parser ignore a bad flag instead of failing the whole request.
"""

from __future__ import annotations

import math
import re
from typing import Any, Optional

_INT_PREFIX = re.compile(r"^\s*([+-]?[0-9]+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?)")
_INT_FULL = re.compile(r"^[+-]?[0-9]+$")
_FLOAT_FULL = re.compile(r"^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?$")

_FALSY = {"0", "false", "no", "off"}


def to_int(raw: Any) -> int:
    """parseInt-style conversion; anything unparseable becomes 0."""
    if isinstance(raw, bool):
        return 1 if raw else 0
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if math.isnan(raw) or math.isinf(raw):
            return 0
        return int(raw)
    if not isinstance(raw, str):
        return 0
    m = _INT_PREFIX.match(raw)
    if not m:
        return 0
    return int(m.group(1))


def to_unsigned_int(raw: Any) -> int:
    return abs(to_int(raw))


def to_float(raw: Any) -> Optional[float]:
    """parseFloat-style conversion: leading number of a string, else None."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        m = _FLOAT_PREFIX.match(raw)
        if not m:
            return None
        value = float(m.group(1))
    else:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def is_int_in_range(raw: Any, lo: int, hi: int) -> bool:
    if not isinstance(raw, str) or not _INT_FULL.match(raw.strip()):
        return False
    return lo <= int(raw.strip()) <= hi


def is_float_in_range(raw: Any, lo: float, hi: float) -> bool:
    if not isinstance(raw, str) or not _FLOAT_FULL.match(raw.strip()):
        return False
    value = float(raw.strip())
    return lo <= value <= hi


def to_bool(raw: Any) -> bool:
    """
    Presence-based flag coercion.

    None (flag absent) is False. A present flag is True unless its value is
    an explicit negative such as "0" or "false"; "?sharpen" alone is True.
    """
    if raw is None:
        return False
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() not in _FALSY


__all__ = [
    "to_int",
    "to_unsigned_int",
    "to_float",
    "is_int_in_range",
    "is_float_in_range",
    "to_bool",
]
