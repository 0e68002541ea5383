"""
Colour normalisation.

Accepts the two encodings that show up in query strings:
- 3 or 6 hex digits without a leading '#': "fff", "e5e5e5"
- a comma separated RGB(A) list: "255,255,255" or "0,0,0,0.5"

Everything downstream works with the canonical ``Color`` value only.
"""

from __future__ import annotations

import math
import string
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Optional, Tuple

from imagist.services.coerce import to_float

_HEX_DIGITS = frozenset(string.hexdigits)


class InvalidColor(ValueError):
    """Raised when a raw value is neither hex nor an RGB(A) list."""


@dataclass(frozen=True)
class Color:
    r: int
    g: int
    b: int
    alpha: Optional[float] = None

    def rgb(self) -> Tuple[int, int, int]:
        return (self.r, self.g, self.b)

    def rgba(self) -> Tuple[int, int, int, int]:
        a = 1.0 if self.alpha is None else self.alpha
        return (self.r, self.g, self.b, _round_half_up(a * 255))

    def __str__(self) -> str:
        parts = [str(self.r), str(self.g), str(self.b)]
        if self.alpha is not None:
            parts.append(repr(self.alpha))
        return ",".join(parts)


BLACK = Color(0, 0, 0)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _channel(value: float) -> int:
    return min(255, max(0, _round_half_up(value)))


def _alpha(value: float) -> Optional[float]:
    clamped = min(1.0, max(0.0, value))
    # Fully opaque is the same as no alpha at all.
    return None if clamped == 1.0 else clamped


def _from_list(raw: str) -> Optional[Color]:
    segments = [s for s in raw.strip().split(",") if s != ""]
    if len(segments) not in (3, 4):
        return None

    values: List[float] = []
    for idx, seg in enumerate(segments):
        parsed = to_float(seg.strip())
        if parsed is None:
            if idx == 3:
                # a junk alpha is dropped, not fatal
                continue
            return None
        values.append(parsed)

    r, g, b = (_channel(v) for v in values[:3])
    alpha = _alpha(values[3]) if len(values) == 4 else None
    return Color(r, g, b, alpha)


def _from_hex(raw: str) -> Optional[Color]:
    if not all(ch in _HEX_DIGITS for ch in raw):
        return None
    if len(raw) == 3:
        raw = "".join(ch * 2 for ch in raw)
    return Color(int(raw[0:2], 16), int(raw[2:4], 16), int(raw[4:6], 16))


@lru_cache(maxsize=1024)
def _parse(raw: str) -> Optional[Color]:
    if "," in raw:
        return _from_list(raw)
    if len(raw) in (3, 6):
        return _from_hex(raw)
    return None


def normalize(raw: Any) -> Color:
    """Return the canonical colour for ``raw`` or raise ``InvalidColor``."""
    if not isinstance(raw, str):
        raise InvalidColor(f"not a colour: {raw!r}")
    color = _parse(raw)
    if color is None:
        raise InvalidColor(f"not a colour: {raw!r}")
    return color


def try_normalize(raw: Any) -> Optional[Color]:
    try:
        return normalize(raw)
    except InvalidColor:
        return None


__all__ = ["Color", "BLACK", "InvalidColor", "normalize", "try_normalize"]
