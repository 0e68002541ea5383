"""
Transform engines.

An engine consumes an input byte stream plus an OperationList and produces
an output byte stream. The orchestrator only depends on the protocol; the
Pillow engine below is the default implementation.
"""

from __future__ import annotations

import asyncio
import io
import logging
import math
from typing import Any, AsyncIterator, Callable, Dict, Mapping, Optional, Protocol, Tuple

from PIL import Image, ImageChops, ImageFile, ImageFilter, ImageOps, ImageStat

from imagist.services.color import BLACK, Color
from imagist.services.errors import TransformFailure
from imagist.services.pipeline import Operation, OperationList

_log = logging.getLogger(__name__)


class TransformEngine(Protocol):
    """Applies an ordered operation list to a byte stream."""

    def transform(
        self, source: AsyncIterator[bytes], operations: OperationList
    ) -> AsyncIterator[bytes]: ...


# ------------------------------- Pillow helpers -------------------------------

KERNELS: Mapping[str, Image.Resampling] = {
    "nearest": Image.Resampling.NEAREST,
    "cubic": Image.Resampling.BICUBIC,
    "mitchell": Image.Resampling.BICUBIC,
    "lanczos2": Image.Resampling.LANCZOS,
    "lanczos3": Image.Resampling.LANCZOS,
}

CENTERING: Mapping[str, Tuple[float, float]] = {
    "center": (0.5, 0.5),
    "top": (0.5, 0.0),
    "bottom": (0.5, 1.0),
    "left": (0.0, 0.5),
    "right": (1.0, 0.5),
    "top-left": (0.0, 0.0),
    "top-right": (1.0, 0.0),
    "bottom-left": (0.0, 1.0),
    "bottom-right": (1.0, 1.0),
}

PIL_FORMATS: Mapping[str, str] = {
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
    "tiff": "TIFF",
}

_LOSSY = {"jpeg", "webp"}
_CROP_CANDIDATES = 9

_DECODE_ERRORS = (OSError, ValueError, SyntaxError, MemoryError, Image.DecompressionBombError)

DEFAULT_MAX_PIXELS = 50_000_000


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA")


def _working_mode(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA", "L", "LA"):
        return img
    if "A" in img.getbands() or "transparency" in img.info:
        return img.convert("RGBA")
    return img.convert("RGB")


def _fill(img: Image.Image, color: Color) -> Any:
    if img.mode == "RGBA":
        return color.rgba()
    if img.mode == "RGB":
        return color.rgb()
    lum = int(round(0.299 * color.r + 0.587 * color.g + 0.114 * color.b))
    if img.mode == "LA":
        return (lum, color.rgba()[3])
    return lum


def _split_alpha(img: Image.Image) -> Tuple[Image.Image, Optional[Image.Image]]:
    if img.mode == "RGBA":
        return img.convert("RGB"), img.getchannel("A")
    if img.mode == "LA":
        return img.convert("L"), img.getchannel("A")
    return img, None


def _with_alpha(img: Image.Image, alpha: Optional[Image.Image]) -> Image.Image:
    if alpha is None:
        return img
    out = img.convert("LA" if img.mode == "L" else "RGBA")
    out.putalpha(alpha)
    return out


def _trim(img: Image.Image, threshold: int) -> Image.Image:
    """Crop away edges that match the top-left pixel within ``threshold``."""
    base = img.convert("RGB")
    background = Image.new("RGB", base.size, base.getpixel((0, 0)))
    diff = ImageChops.difference(base, background).convert("L")
    mask = diff.point(lambda v: 255 if v > threshold else 0)
    box = mask.getbbox()
    if not box:
        return img
    return img.crop(box)


def _negate(img: Image.Image) -> Image.Image:
    color, alpha = _split_alpha(img)
    return _with_alpha(ImageOps.invert(color), alpha)


def _tint(img: Image.Image, color: Color) -> Image.Image:
    # keep luminance, take chroma from the tint colour
    grey, alpha = _split_alpha(img.convert("RGBA") if _has_alpha(img) else img)
    tinted = ImageOps.colorize(grey.convert("L"), black=(0, 0, 0), white=(255, 255, 255), mid=color.rgb())
    return _with_alpha(tinted, alpha)


def _greyscale(img: Image.Image) -> Image.Image:
    return img.convert("LA" if _has_alpha(img) else "L")


def _window_offsets(span: int, size: int, count: int = _CROP_CANDIDATES) -> list[int]:
    slack = span - size
    if slack <= 0:
        return [0]
    steps = min(count, slack + 1)
    return sorted({round(slack * i / (steps - 1)) for i in range(steps)}) if steps > 1 else [0]


def _score_entropy(region: Image.Image) -> float:
    return region.convert("L").entropy()


def _score_attention(region: Image.Image) -> float:
    edges = region.convert("L").filter(ImageFilter.FIND_EDGES)
    return ImageStat.Stat(edges).mean[0]


_SCORERS: Mapping[str, Callable[[Image.Image], float]] = {
    "entropy": _score_entropy,
    "attention": _score_attention,
}


def _crop_box(
    img: Image.Image, width: int, height: int, position: Optional[str]
) -> Tuple[int, int, int, int]:
    src_w, src_h = img.size
    width, height = min(width, src_w), min(height, src_h)

    scorer = _SCORERS.get(position or "")
    if scorer is not None:
        best: Optional[Tuple[float, int, int]] = None
        for x in _window_offsets(src_w, width):
            for y in _window_offsets(src_h, height):
                score = scorer(img.crop((x, y, x + width, y + height)))
                if best is None or score > best[0]:
                    best = (score, x, y)
        assert best is not None
        _, left, top = best
    else:
        cx, cy = CENTERING.get(position or "center", (0.5, 0.5))
        left = int(round((src_w - width) * cx))
        top = int(round((src_h - height) * cy))
    return (left, top, left + width, top + height)


def _check_pixels(width: int, height: int, limit: int) -> None:
    if width * height > limit:
        raise TransformFailure(
            f"Output of {width}x{height} exceeds the {limit} pixel limit."
        )


def _resize(
    img: Image.Image, args: Mapping[str, Any], max_pixels: int = DEFAULT_MAX_PIXELS
) -> Image.Image:
    src_w, src_h = img.size
    width: Optional[int] = args.get("width")
    height: Optional[int] = args.get("height")
    if not width and not height:
        return img
    # a single dimension keeps the aspect ratio
    w = width or max(1, round(src_w * height / src_h))
    h = height or max(1, round(src_h * width / src_w))

    fit = args.get("fit", "cover")
    position = args.get("position")
    resample = KERNELS.get(args.get("kernel", "lanczos3"), Image.Resampling.LANCZOS)
    background: Color = args.get("background") or BLACK

    if fit == "fill":
        if not args.get("allow_upscale") and (w > src_w or h > src_h):
            return img
        _check_pixels(w, h, max_pixels)
        return img.resize((w, h), resample)

    if fit in ("cover", "outside"):
        scale = max(w / src_w, h / src_h)
    else:
        scale = min(w / src_w, h / src_h)
    if not args.get("allow_upscale") and scale > 1:
        return img

    scaled_w = max(1, math.ceil(src_w * scale - 1e-9))
    scaled_h = max(1, math.ceil(src_h * scale - 1e-9))
    _check_pixels(max(scaled_w, w), max(scaled_h, h), max_pixels)
    scaled = img.resize((scaled_w, scaled_h), resample)
    if fit == "cover":
        return scaled.crop(_crop_box(scaled, w, h, position))
    if fit == "contain":
        mode = "RGBA" if background.alpha is not None and scaled.mode == "RGB" else scaled.mode
        if mode != scaled.mode:
            scaled = scaled.convert(mode)
        canvas = Image.new(mode, (w, h), _fill(scaled, background))
        cx, cy = CENTERING.get(position or "center", (0.5, 0.5))
        offset = (int(round((w - scaled.width) * cx)), int(round((h - scaled.height) * cy)))
        canvas.paste(scaled, offset)
        return canvas
    return scaled


def _flatten(img: Image.Image) -> Image.Image:
    color, alpha = _split_alpha(img)
    if alpha is None:
        return img
    canvas = Image.new(color.mode, color.size, 255 if color.mode == "L" else (255, 255, 255))
    canvas.paste(color, mask=alpha)
    return canvas


def _encode(
    img: Image.Image, args: Mapping[str, Any], info: Mapping[str, Any], keep_metadata: bool
) -> bytes:
    fmt = str(args["format"])
    pil_format = PIL_FORMATS.get(fmt)
    if pil_format is None:
        raise TransformFailure(f"Unsupported output format: {fmt}")

    if fmt == "jpeg":
        img = _flatten(img)
    params: Dict[str, Any] = {}
    if fmt in _LOSSY:
        params["quality"] = int(args.get("quality", 80))
    if keep_metadata:
        for key in ("exif", "icc_profile"):
            if info.get(key):
                params[key] = info[key]

    buf = io.BytesIO()
    img.save(buf, format=pil_format, **params)
    return buf.getvalue()


# --------------------------------- Engine ------------------------------------


class PillowEngine:
    """
    Pillow-backed engine.

    Input chunks are fed to an incremental ``ImageFile.Parser`` as they
    arrive; pixel work and encoding run in a worker thread. Output is handed
    back in ``chunk_size`` pieces so the response can apply backpressure.
    """

    def __init__(
        self, chunk_size: int = 64 * 1024, max_pixels: int = DEFAULT_MAX_PIXELS
    ) -> None:
        self.chunk_size = chunk_size
        self.max_pixels = max_pixels

    async def _decode(self, source: AsyncIterator[bytes]) -> Image.Image:
        parser = ImageFile.Parser()
        try:
            async for chunk in source:
                parser.feed(chunk)
            return parser.close()
        except _DECODE_ERRORS as exc:
            raise TransformFailure(f"Could not decode image: {exc}") from exc

    def _render(self, img: Image.Image, operations: OperationList) -> bytes:
        info = dict(img.info)
        img = _working_mode(img)
        keep_metadata = False
        for op in operations:
            if op.name == "encode":
                return _encode(img, op.args, info, keep_metadata)
            if op.name == "metadata":
                keep_metadata = bool(op.args.get("keep"))
                continue
            img = self._apply(img, op)
        raise TransformFailure("Operation list has no encode step.")

    def _apply(self, img: Image.Image, op: Operation) -> Image.Image:
        args = op.args
        if op.name == "trim":
            return _trim(img, int(args["threshold"]))
        if op.name == "rotate":
            background = args.get("background") or BLACK
            degrees = float(args["degrees"])
            rad = math.radians(degrees)
            cos, sin = abs(math.cos(rad)), abs(math.sin(rad))
            _check_pixels(
                math.ceil(img.width * cos + img.height * sin - 1e-9),
                math.ceil(img.width * sin + img.height * cos - 1e-9),
                self.max_pixels,
            )
            # positive degrees rotate clockwise
            return img.rotate(
                -degrees,
                resample=Image.Resampling.BICUBIC,
                expand=True,
                fillcolor=_fill(img, background),
            )
        if op.name == "flip":
            return ImageOps.flip(img)
        if op.name == "flop":
            return ImageOps.mirror(img)
        if op.name == "sharpen":
            return img.filter(ImageFilter.SHARPEN)
        if op.name == "blur":
            return img.filter(ImageFilter.GaussianBlur(radius=float(args["sigma"])))
        if op.name == "negate":
            return _negate(img)
        if op.name == "tint":
            return _tint(img, args["color"])
        if op.name == "greyscale":
            return _greyscale(img)
        if op.name == "resize":
            return _resize(img, args, self.max_pixels)
        raise TransformFailure(f"Unknown operation: {op.name}")

    async def transform(
        self, source: AsyncIterator[bytes], operations: OperationList
    ) -> AsyncIterator[bytes]:
        try:
            img = await self._decode(source)
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()

        try:
            data = await asyncio.to_thread(self._render, img, operations)
        except TransformFailure:
            raise
        except _DECODE_ERRORS as exc:
            raise TransformFailure(f"Could not transform image: {exc}") from exc

        _log.debug(
            "image rendered",
            extra={"operations": operations.names(), "output_bytes": len(data)},
        )
        view = memoryview(data)
        for start in range(0, len(data), self.chunk_size):
            yield bytes(view[start : start + self.chunk_size])


__all__ = ["TransformEngine", "PillowEngine", "KERNELS", "CENTERING"]
