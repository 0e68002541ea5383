from __future__ import annotations

from typing import Optional

import httpx

from imagist.config import Settings, get_settings

_client: Optional[httpx.AsyncClient] = None


def _build(settings: Settings) -> httpx.AsyncClient:
    limits = httpx.Limits(
        max_connections=settings.httpx_max_connections,
        max_keepalive_connections=settings.httpx_max_keepalive,
        keepalive_expiry=settings.httpx_keepalive_s,
    )
    # connect/read bounds per socket operation; time-to-first-byte is
    # enforced separately around the whole send
    timeout = httpx.Timeout(settings.fetch_timeout_s, connect=settings.fetch_ttfb_timeout_s)
    return httpx.AsyncClient(timeout=timeout, limits=limits, follow_redirects=False)


def get_http_client(settings: Optional[Settings] = None) -> httpx.AsyncClient:
    """Process-wide client, created on first use."""
    global _client
    if _client is None or _client.is_closed:
        _client = _build(settings or get_settings())
    return _client


async def close_http_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
