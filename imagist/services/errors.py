"""Structural request failures.

Parameter-level problems never reach this module: the option parser absorbs
them. Everything here aborts the request and maps to exactly one HTTP status.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ImagistError(Exception):
    """Base for request-terminating failures with a stable error code."""

    status_code: int = 500
    code: str = "error"

    def __init__(self, detail: str, *, extra: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.extra: Dict[str, Any] = dict(extra or {})


class MissingSource(ImagistError):
    status_code = 400
    code = "missing_source"


class InvalidSourceURL(ImagistError):
    status_code = 400
    code = "invalid_source_url"


class HostNotAllowed(ImagistError):
    status_code = 403
    code = "host_not_allowed"

    def __init__(self, host: str) -> None:
        super().__init__(f"Host not allowed: {host}", extra={"host": host})
        self.host = host


class FetchFailure(ImagistError):
    status_code = 502
    code = "fetch_failed"

    def __init__(self, detail: str, *, upstream_status: Optional[int] = None) -> None:
        extra = {"upstream_status": upstream_status} if upstream_status is not None else None
        super().__init__(detail, extra=extra)
        self.upstream_status = upstream_status


class FetchTimeout(FetchFailure):
    status_code = 504
    code = "fetch_timeout"


class UnsupportedContentType(ImagistError):
    status_code = 415
    code = "unsupported_media_type"

    def __init__(self, mime: Optional[str]) -> None:
        shown = mime or "unknown"
        super().__init__(f"Unsupported content type: {shown}", extra={"mime": shown})
        self.mime = mime


class TransformFailure(ImagistError):
    status_code = 422
    code = "transform_failed"


__all__ = [
    "ImagistError",
    "MissingSource",
    "InvalidSourceURL",
    "HostNotAllowed",
    "FetchFailure",
    "FetchTimeout",
    "UnsupportedContentType",
    "TransformFailure",
]
