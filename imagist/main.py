# imagist/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI

from imagist.config import APP_NAME, APP_VERSION, Settings, get_settings
from imagist.middleware.request_id import RequestIDMiddleware
from imagist.net.http_client import close_http_client
from imagist.routes import health, image, metrics_route
from imagist.services.engine import PillowEngine, TransformEngine
from imagist.telemetry.errors import register_error_handlers
from imagist.telemetry.logging import configure_root_logging

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    log.info(
        "imagist starting",
        extra={
            "allowlist": app.state.settings.allowed_hosts,
            "base_host": app.state.settings.base_host,
        },
    )
    try:
        yield
    finally:
        await close_http_client()


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[TransformEngine] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the ASGI app. Settings are read once here and treated as
    read-only for the life of the process.
    """
    cfg = settings or get_settings()
    configure_root_logging(cfg.log_level, json_lines=cfg.log_json)

    app = FastAPI(
        title="imagist",
        description="On-the-fly image transformation proxy.",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.engine = engine or PillowEngine(
        chunk_size=cfg.chunk_size, max_pixels=cfg.max_output_pixels
    )
    app.state.http_client = http_client

    register_error_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(health.router)
    if cfg.metrics_enabled:
        app.include_router(metrics_route.router)
    # catch-all; must come last
    app.include_router(image.router)

    log.debug("%s app created", APP_NAME)
    return app
