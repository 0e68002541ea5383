"""
Magic-number content sniffing over an async byte stream.

Only a bounded window of leading bytes is buffered. The caller gets back a
replay stream (buffered head + untouched remainder) so nothing is consumed
twice or lost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Optional, Tuple

from imagist.services.errors import UnsupportedContentType

_log = logging.getLogger(__name__)

JPEG = "image/jpeg"
PNG = "image/png"
GIF = "image/gif"
WEBP = "image/webp"
TIFF = "image/tiff"
SVG = "image/svg+xml"

DEFAULT_WINDOW = 512

# (offset, magic, mime)
_SIGNATURES: Tuple[Tuple[int, bytes, str], ...] = (
    (0, b"\xff\xd8\xff", JPEG),
    (0, b"\x89PNG\r\n\x1a\n", PNG),
    (0, b"GIF87a", GIF),
    (0, b"GIF89a", GIF),
    (0, b"II*\x00", TIFF),
    (0, b"MM\x00*", TIFF),
)

_UTF8_BOM = b"\xef\xbb\xbf"

# sentinel for "need more bytes"
_PENDING = ""


def _match_binary(buf: bytes) -> Optional[str]:
    """Return a MIME, _PENDING while a signature is still possible, or None."""
    pending = False
    for offset, magic, mime in _SIGNATURES:
        end = offset + len(magic)
        if len(buf) >= end:
            if buf[offset:end] == magic:
                return mime
        elif magic.startswith(buf[offset:]):
            pending = True

    # RIFF....WEBP
    if len(buf) >= 12:
        if buf[0:4] == b"RIFF" and buf[8:12] == b"WEBP":
            return WEBP
    elif b"RIFF".startswith(buf[:4]):
        pending = True

    return _PENDING if pending else None


def _match_svg(buf: bytes, final: bool) -> Optional[str]:
    text = buf[len(_UTF8_BOM):] if buf.startswith(_UTF8_BOM) else buf
    text = text.lstrip()
    if not text:
        return None if final else _PENDING
    if not text.startswith(b"<"):
        return None
    if b"<svg" in text.lower():
        return SVG
    return None if final else _PENDING


def classify(buf: bytes, *, final: bool = False) -> Optional[str]:
    """
    Classify a leading byte window.

    Returns the MIME type, ``""`` when more bytes are needed to decide, or
    None when nothing can match. With ``final`` set no more bytes will come,
    so an undecided result becomes None.
    """
    binary = _match_binary(buf)
    if binary:
        return binary
    svg = _match_svg(buf, final)
    if svg:
        return svg
    if final:
        return None
    if binary == _PENDING or svg == _PENDING:
        return _PENDING
    return None


async def _replay(head: bytes, rest: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    try:
        if head:
            yield head
        async for chunk in rest:
            yield chunk
    finally:
        aclose = getattr(rest, "aclose", None)
        if aclose is not None:
            await aclose()


@dataclass
class SniffResult:
    mime: str
    stream: AsyncIterator[bytes]


async def sniff(
    stream: AsyncIterator[bytes],
    accepted: Iterable[str],
    *,
    window: int = DEFAULT_WINDOW,
) -> SniffResult:
    """
    Determine the MIME type of ``stream`` from its leading bytes.

    Raises UnsupportedContentType as soon as the type is known to be outside
    ``accepted`` (or cannot be determined within ``window`` bytes); in that
    case no further chunks are pulled and the stream is closed.
    """
    accepted_set = {m.lower() for m in accepted}
    it = stream.__aiter__()
    buf = b""
    mime: Optional[str] = _PENDING

    while mime == _PENDING and len(buf) < window:
        try:
            chunk = await it.__anext__()
        except StopAsyncIteration:
            mime = classify(buf, final=True)
            break
        buf += chunk
        mime = classify(buf, final=len(buf) >= window)

    if mime not in accepted_set:
        aclose = getattr(it, "aclose", None)
        if aclose is not None:
            await aclose()
        _log.info("rejected content type", extra={"mime": mime or "unknown"})
        raise UnsupportedContentType(mime or None)

    return SniffResult(mime=mime, stream=_replay(buf, it))


__all__ = [
    "JPEG",
    "PNG",
    "GIF",
    "WEBP",
    "TIFF",
    "SVG",
    "DEFAULT_WINDOW",
    "SniffResult",
    "classify",
    "sniff",
]
