from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from imagist.net.http_client import get_http_client
from imagist.services.orchestrator import handle

router = APIRouter(tags=["image"])


@router.get("/{source:path}", summary="Fetch, transform and stream an image")
async def transform_image(request: Request, source: str) -> StreamingResponse:
    """
    ``source`` is a full URL (``/https://cdn.example.com/a.jpg``), a
    scheme-less URL, or a path relative to the configured base host or local
    root. Transform options come from the query string.
    """
    state = request.app.state
    settings = state.settings
    client = state.http_client or get_http_client(settings)

    result = await handle(
        "/" + source,
        request.query_params,
        settings=settings,
        engine=state.engine,
        client=client,
    )
    return StreamingResponse(
        result.stream,
        media_type=result.mime,
        headers={"X-Content-Type-Options": "nosniff"},
        background=BackgroundTask(result.aclose),
    )
