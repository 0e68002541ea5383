from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from imagist.config import APP_NAME, APP_VERSION

router = APIRouter(tags=["ops"])


@router.get("/healthz", summary="Liveness check")
async def healthz(request: Request) -> Dict[str, Any]:
    settings = request.app.state.settings
    return {
        "status": "ok",
        "service": APP_NAME,
        "version": APP_VERSION,
        "allowlist_enabled": bool(settings.allowed_hosts),
    }
