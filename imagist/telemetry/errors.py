"""
Exception -> JSON response mapping.

Every error body has the same shape, ``{"detail", "code", "request_id"}``
plus any error-specific fields, and carries the X-Request-ID header so a
client report can be matched to the server log line.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from imagist.middleware.request_id import HEADER as REQUEST_ID_HEADER, get_request_id
from imagist.services.errors import ImagistError

_log = logging.getLogger(__name__)

_HTTP_CODES = {
    400: "bad_request",
    404: "not_found",
    405: "method_not_allowed",
    422: "validation_error",
}


def _request_id(request: Request) -> str:
    return (
        get_request_id()
        or getattr(request.state, "request_id", None)
        or request.headers.get(REQUEST_ID_HEADER)
        or str(uuid4())
    )


def error_response(
    request: Request,
    status: int,
    code: str,
    detail: str,
    extra: Optional[Mapping[str, Any]] = None,
) -> JSONResponse:
    rid = _request_id(request)
    body = {**(extra or {}), "detail": detail, "code": code, "request_id": rid}
    return JSONResponse(body, status_code=status, headers={REQUEST_ID_HEADER: rid})


async def _imagist_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ImagistError)
    return error_response(request, exc.status_code, exc.code, exc.detail, exc.extra)


async def _http_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StarletteHTTPException)
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    return error_response(request, exc.status_code, _HTTP_CODES.get(exc.status_code, "error"), detail)


async def _validation_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    return error_response(
        request, 422, "validation_error", "Validation failed", {"errors": exc.errors()}
    )


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    # the traceback stays in the log; the client only gets the request id
    _log.exception("unhandled error: %s", type(exc).__name__)
    return error_response(request, 500, "internal_error", "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ImagistError, _imagist_error)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unhandled_error)


__all__ = ["error_response", "register_error_handlers"]
