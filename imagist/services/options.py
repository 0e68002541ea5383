"""
Query string -> TransformSpec.

A malformed or out-of-range value is ignored and the field keeps its
default. One bad flag never blocks a request.

Each parsing step takes the current (frozen) spec and returns a new one, so
steps cannot mutate each other's fields behind their backs. The only
cross-field rule (content-aware positions need fit=cover) lives in the
position step, which runs after the fit step.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, FrozenSet, Mapping, Optional, Sequence, Tuple

from imagist.services.coerce import (
    is_float_in_range,
    is_int_in_range,
    to_bool,
    to_unsigned_int,
)
from imagist.services.color import BLACK, Color, try_normalize

Query = Mapping[str, str]

FITS: Tuple[str, ...] = ("cover", "contain", "fill", "inside", "outside")
POSITIONS: Tuple[str, ...] = (
    "center",
    "top",
    "bottom",
    "left",
    "right",
    "top-left",
    "top-right",
    "bottom-left",
    "bottom-right",
    "entropy",
    "attention",
)
POSITION_ALIASES = {
    "centre": "center",
    "north": "top",
    "northeast": "top-right",
    "east": "right",
    "southeast": "bottom-right",
    "south": "bottom",
    "southwest": "bottom-left",
    "west": "left",
    "northwest": "top-left",
    "detail": "entropy",
    "luminance": "attention",
}
INTERPOLATIONS: Tuple[str, ...] = ("nearest", "cubic", "mitchell", "lanczos2", "lanczos3")
FORMAT_ALIASES = {"jpg": "jpeg", "tif": "tiff"}
FLIPS = ("h", "v", "both")


@dataclass(frozen=True)
class ParserPolicy:
    """Tunable constants of the parser."""

    default_quality: int = 80
    trim_threshold: int = 10
    max_dimension: int = 8192
    cover_only_positions: FrozenSet[str] = frozenset({"entropy", "attention"})
    rotate_range: Tuple[float, float] = (-360.0, 360.0)
    blur_range: Tuple[float, float] = (0.3, 1000.0)
    output_formats: FrozenSet[str] = frozenset({"jpeg", "png", "webp"})


DEFAULT_POLICY = ParserPolicy()


@dataclass(frozen=True)
class ResizeSpec:
    width: Optional[int] = None
    height: Optional[int] = None
    fit: str = "cover"
    position: Optional[str] = "center"
    interpolation: str = "lanczos3"
    allow_upscale: bool = False
    background: Color = BLACK

    @property
    def active(self) -> bool:
        return bool(self.width or self.height)


@dataclass(frozen=True)
class TransformSpec:
    resize: ResizeSpec = field(default_factory=ResizeSpec)
    rotate_degrees: float = 0.0
    flip_vertical: bool = False
    flip_horizontal: bool = False
    trim_threshold: Optional[int] = None
    sharpen: bool = False
    greyscale: bool = False
    negate: bool = False
    preserve_metadata: bool = False
    blur_sigma: Optional[float] = None
    tint: Optional[Color] = None
    quality: int = 80
    output_format: Optional[str] = None


def default_spec(policy: ParserPolicy = DEFAULT_POLICY) -> TransformSpec:
    return TransformSpec(quality=policy.default_quality)


# ------------------------------- lookup helpers -------------------------------


def _get(query: Query, *names: str) -> Optional[str]:
    """
    First non-empty value wins; callers list the verbose spelling first.
    When every present name is empty, "" comes back so bare flags still count.
    """
    found: Optional[str] = None
    for name in names:
        if name in query:
            value = query[name]
            if not isinstance(value, str):
                continue
            if value:
                return value
            if found is None:
                found = value
    return found


def _has(query: Query, *names: str) -> bool:
    return any(name in query for name in names)


def _resize(spec: TransformSpec, **changes: object) -> TransformSpec:
    return replace(spec, resize=replace(spec.resize, **changes))


Step = Callable[[TransformSpec, Query, ParserPolicy], TransformSpec]


# ------------------------------- parsing steps --------------------------------


def _dimensions(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    width = _get(query, "width", "w")
    height = _get(query, "height", "h")
    # values above the cap are ignored like any other unusable value
    if width:
        w = to_unsigned_int(width)
        if w <= policy.max_dimension:
            spec = _resize(spec, width=w or None)
    if height:
        h = to_unsigned_int(height)
        if h <= policy.max_dimension:
            spec = _resize(spec, height=h or None)
    return spec


def _fit(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    fit = _get(query, "fit")
    if fit in FITS:
        spec = _resize(spec, fit=fit)
    return spec


def _position(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    raw = _get(query, "position", "pos")
    if not raw:
        return spec
    position = POSITION_ALIASES.get(raw.lower(), raw.lower())
    if position not in POSITIONS:
        return spec
    if position in policy.cover_only_positions and spec.resize.fit != "cover":
        # content-aware cropping only exists for fit=cover
        return _resize(spec, position=None)
    return _resize(spec, position=position)


def _interpolation(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    kernel = _get(query, "interpolation", "i")
    if kernel in INTERPOLATIONS:
        spec = _resize(spec, interpolation=kernel)
    return spec


def _enlarge(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    if _has(query, "enlarge", "max"):
        spec = _resize(spec, allow_upscale=to_bool(_get(query, "enlarge", "max")))
    return spec


def _background(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    color = try_normalize(_get(query, "background", "bg"))
    if color is not None:
        spec = _resize(spec, background=color)
    return spec


def _quality(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    raw = _get(query, "quality", "q")
    if raw and is_int_in_range(raw, 1, 100):
        spec = replace(spec, quality=int(raw.strip()))
    return spec


def _format(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    raw = _get(query, "format", "fmt")
    if not raw:
        return spec
    fmt = raw.strip().lower()
    fmt = FORMAT_ALIASES.get(fmt, fmt)
    if fmt in policy.output_formats:
        spec = replace(spec, output_format=fmt)
    return spec


def _trim(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    if _has(query, "trim") and to_bool(_get(query, "trim")):
        spec = replace(spec, trim_threshold=policy.trim_threshold)
    return spec


def _rotate(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    raw = _get(query, "rotate", "r")
    lo, hi = policy.rotate_range
    if raw and is_float_in_range(raw, lo, hi):
        spec = replace(spec, rotate_degrees=float(raw.strip()))
    return spec


def _flip(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    raw = _get(query, "flip")
    if raw not in FLIPS:
        return spec
    return replace(
        spec,
        flip_vertical=raw in ("v", "both"),
        flip_horizontal=raw in ("h", "both"),
    )


def _blur(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    raw = _get(query, "blur")
    lo, hi = policy.blur_range
    if raw and is_float_in_range(raw, lo, hi):
        spec = replace(spec, blur_sigma=float(raw.strip()))
    return spec


def _tint(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    color = try_normalize(_get(query, "tint"))
    if color is not None:
        spec = replace(spec, tint=color)
    return spec


def _flags(spec: TransformSpec, query: Query, policy: ParserPolicy) -> TransformSpec:
    return replace(
        spec,
        sharpen=to_bool(_get(query, "sharpen", "sharp")),
        negate=to_bool(_get(query, "negative", "neg")),
        greyscale=to_bool(_get(query, "greyscale", "gs")),
        preserve_metadata=to_bool(_get(query, "meta")),
    )


STEPS: Sequence[Step] = (
    _dimensions,
    _fit,
    _position,
    _interpolation,
    _enlarge,
    _background,
    _quality,
    _format,
    _trim,
    _rotate,
    _flip,
    _blur,
    _tint,
    _flags,
)


def parse(query: Query, policy: Optional[ParserPolicy] = None) -> TransformSpec:
    """Map a query mapping onto a TransformSpec. Never raises on values."""
    active = policy or DEFAULT_POLICY
    spec = default_spec(active)
    for step in STEPS:
        spec = step(spec, query, active)
    return spec


__all__ = [
    "FITS",
    "POSITIONS",
    "INTERPOLATIONS",
    "ParserPolicy",
    "DEFAULT_POLICY",
    "ResizeSpec",
    "TransformSpec",
    "default_spec",
    "parse",
]
