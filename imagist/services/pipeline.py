"""TransformSpec -> ordered OperationList for the transform engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple

from imagist.services.options import TransformSpec

FORMAT_MIME: Mapping[str, str] = MappingProxyType(
    {
        "jpeg": "image/jpeg",
        "png": "image/png",
        "webp": "image/webp",
        "gif": "image/gif",
        "tiff": "image/tiff",
    }
)
MIME_FORMAT: Mapping[str, str] = MappingProxyType({v: k for k, v in FORMAT_MIME.items()})

# formats the engine can write back out unchanged in kind
REENCODABLE: FrozenSet[str] = frozenset(FORMAT_MIME)
FALLBACK_FORMAT = "jpeg"


@dataclass(frozen=True)
class Operation:
    name: str
    args: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __iter__(self) -> Iterator[Any]:
        # allows ``name, args = op``
        yield self.name
        yield self.args


def _op(name: str, **args: Any) -> Operation:
    return Operation(name, MappingProxyType(dict(args)))


@dataclass(frozen=True)
class OperationList:
    operations: Tuple[Operation, ...]
    mime: str

    @property
    def terminal(self) -> Operation:
        return self.operations[-1]

    @property
    def output_format(self) -> str:
        return str(self.terminal.args["format"])

    def names(self) -> List[str]:
        return [op.name for op in self.operations]

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)

    def __len__(self) -> int:
        return len(self.operations)


def resolve_format(
    explicit: Optional[str],
    input_mime: str,
    reencodable: FrozenSet[str] = REENCODABLE,
) -> str:
    if explicit and explicit in FORMAT_MIME:
        return explicit
    fmt = MIME_FORMAT.get(input_mime)
    if fmt and fmt in reencodable:
        return fmt
    return FALLBACK_FORMAT


def build(
    spec: TransformSpec,
    input_mime: str,
    *,
    reencodable: FrozenSet[str] = REENCODABLE,
) -> OperationList:
    """
    Order is fixed: trim, rotate, flip, flop, sharpen, blur, negate, tint,
    greyscale, metadata, resize, encode. Resize runs last so the pixel
    operations before it see full-resolution data.
    """
    ops: List[Operation] = []

    if spec.trim_threshold:
        ops.append(_op("trim", threshold=spec.trim_threshold))
    if spec.rotate_degrees:
        ops.append(_op("rotate", degrees=spec.rotate_degrees, background=spec.resize.background))
    if spec.flip_vertical:
        ops.append(_op("flip"))
    if spec.flip_horizontal:
        ops.append(_op("flop"))
    if spec.sharpen:
        ops.append(_op("sharpen"))
    if spec.blur_sigma is not None:
        ops.append(_op("blur", sigma=spec.blur_sigma))
    if spec.negate:
        ops.append(_op("negate"))
    if spec.tint is not None:
        ops.append(_op("tint", color=spec.tint))
    if spec.greyscale:
        ops.append(_op("greyscale"))
    if spec.preserve_metadata:
        ops.append(_op("metadata", keep=True))

    r = spec.resize
    if r.active:
        resize_args: Dict[str, Any] = {
            "width": r.width,
            "height": r.height,
            "fit": r.fit,
            "position": r.position,
            "kernel": r.interpolation,
            "allow_upscale": r.allow_upscale,
            "background": r.background,
        }
        ops.append(_op("resize", **resize_args))

    fmt = resolve_format(spec.output_format, input_mime, reencodable)
    ops.append(_op("encode", format=fmt, quality=spec.quality))

    return OperationList(operations=tuple(ops), mime=FORMAT_MIME[fmt])


__all__ = [
    "FORMAT_MIME",
    "MIME_FORMAT",
    "REENCODABLE",
    "Operation",
    "OperationList",
    "resolve_format",
    "build",
]
