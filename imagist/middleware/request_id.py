from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

HEADER = "X-Request-ID"
_MAX_LEN = 128


def get_request_id() -> Optional[str]:
    """Current request id, if a request is being handled."""
    return _REQUEST_ID.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Gives every request an id:
    - accept a non-blank incoming X-Request-ID (capped at 128 chars), else
      generate a UUID4;
    - expose it through a contextvar for logging and error bodies;
    - echo it on the response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        raw_header = request.headers.get(HEADER)
        rid = (raw_header or "").strip()[:_MAX_LEN] or str(uuid.uuid4())

        token = _REQUEST_ID.set(rid)
        try:
            request.state.request_id = rid
            response: Response = await call_next(request)
        finally:
            # Always reset contextvar to avoid leakage across requests.
            _REQUEST_ID.reset(token)

        if response.headers.get(HEADER) is None:
            response.headers[HEADER] = rid
        return response
