"""
Source acquisition.

Remote sources are fetched with a streaming httpx request; redirects are
followed by hand so every hop goes through the host guard. Local sources
are read in chunks with anyio. Either way the caller gets an async iterator
that owns the underlying resource and releases it when closed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional
from urllib.parse import urljoin, urlsplit

import anyio
import httpx

from imagist.services.errors import FetchFailure, FetchTimeout
from imagist.services.source import guard
from imagist.telemetry.metrics import add_source_bytes, fetch_latency_seconds, observe

_log = logging.getLogger(__name__)

_ACCEPT = "image/*,*/*;q=0.8"


@dataclass
class FetchedSource:
    stream: AsyncIterator[bytes]
    url: str
    declared_type: Optional[str] = None  # informational only; never trusted


class _RemoteBody:
    """
    Async iterator over a streaming response body.

    Unlike an async generator, ``aclose`` releases the connection even when
    iteration never started.
    """

    def __init__(self, response: httpx.Response, max_bytes: int) -> None:
        self._response = response
        self._chunks = response.aiter_bytes()
        self._max_bytes = max_bytes
        self._received = 0
        self._closed = False

    def __aiter__(self) -> "_RemoteBody":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        try:
            chunk = await self._chunks.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            raise
        except httpx.TimeoutException as exc:
            await self.aclose()
            raise FetchTimeout("Timed out reading from source.") from exc
        except httpx.HTTPError as exc:
            await self.aclose()
            raise FetchFailure(f"Failed reading from source: {exc}") from exc

        self._received += len(chunk)
        if self._received > self._max_bytes:
            await self.aclose()
            raise FetchFailure(f"Source exceeds {self._max_bytes} bytes.")
        return chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        add_source_bytes("remote", self._received)


async def _send(client: httpx.AsyncClient, url: str, ttfb_timeout: float, user_agent: str) -> httpx.Response:
    request = client.build_request(
        "GET", url, headers={"User-Agent": user_agent, "Accept": _ACCEPT}
    )
    try:
        with observe(fetch_latency_seconds):
            return await asyncio.wait_for(
                client.send(request, stream=True, follow_redirects=False),
                timeout=ttfb_timeout,
            )
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise FetchTimeout("Request to image source timed out.") from exc
    except httpx.HTTPError as exc:
        raise FetchFailure(f"Failed to retrieve image from source: {exc}") from exc


async def fetch_remote(
    client: httpx.AsyncClient,
    url: str,
    *,
    allowlist: Iterable[str] = (),
    ttfb_timeout: float = 10.0,
    max_redirects: int = 5,
    max_bytes: int = 25 * 1024 * 1024,
    user_agent: str = "imagist",
) -> FetchedSource:
    """
    Issue the GET and wait for a 2xx response head.

    ``url`` must already have passed the host guard; redirect targets are
    guarded here before they are requested.
    """
    hosts = list(allowlist)
    current = url
    for _ in range(max_redirects + 1):
        response = await _send(client, current, ttfb_timeout, user_agent)

        if response.is_redirect:
            location = response.headers.get("location")
            await response.aclose()
            if not location:
                raise FetchFailure("Redirect without a location.")
            current = urljoin(current, location)
            if urlsplit(current).scheme not in ("http", "https"):
                raise FetchFailure("Redirect to an unsupported scheme.")
            guard(current, hosts)
            _log.debug("following redirect", extra={"location": current})
            continue

        if not response.is_success:
            status = response.status_code
            await response.aclose()
            raise FetchFailure(
                f"Image source returned error: {status}", upstream_status=status
            )

        length = response.headers.get("content-length")
        if length and length.isdigit() and int(length) > max_bytes:
            await response.aclose()
            raise FetchFailure(f"Source exceeds {max_bytes} bytes.")

        return FetchedSource(
            stream=_RemoteBody(response, max_bytes),
            url=current,
            declared_type=response.headers.get("content-type"),
        )

    raise FetchFailure("Too many redirects.")


async def _local_body(path: Path, chunk_size: int, max_bytes: int) -> AsyncIterator[bytes]:
    received = 0
    try:
        async with await anyio.open_file(path, "rb") as fh:
            while True:
                chunk = await fh.read(chunk_size)
                if not chunk:
                    break
                received += len(chunk)
                if received > max_bytes:
                    raise FetchFailure(f"Source exceeds {max_bytes} bytes.")
                yield chunk
    except OSError as exc:
        raise FetchFailure(f"Failed reading local source: {exc}") from exc
    finally:
        add_source_bytes("local", received)


async def fetch_local(
    path: Path, *, chunk_size: int = 64 * 1024, max_bytes: int = 25 * 1024 * 1024
) -> FetchedSource:
    if not await anyio.Path(path).is_file():
        raise FetchFailure("Local source not found.", upstream_status=404)
    return FetchedSource(stream=_local_body(path, chunk_size, max_bytes), url=path.as_uri())


__all__ = ["FetchedSource", "fetch_remote", "fetch_local"]
