"""
Per-request orchestration: guard -> fetch -> sniff -> build -> transform.

``handle`` is the single framework-agnostic entry point. It returns once the
engine has produced its first output chunk, so every structural failure that
can be detected before streaming surfaces as an ImagistError and the HTTP
layer can still send a clean error response. The returned stream owns the
outbound fetch: closing it (e.g. on client disconnect) closes the engine and
the upstream connection.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Mapping, Optional

import httpx

from imagist.config import Settings
from imagist.net.http_client import get_http_client
from imagist.services import options as options_mod
from imagist.services import pipeline as pipeline_mod
from imagist.services.engine import PillowEngine, TransformEngine
from imagist.services.errors import ImagistError, TransformFailure
from imagist.services.fetch import FetchedSource, fetch_local, fetch_remote
from imagist.services.sniff import sniff
from imagist.services.source import SourceDescriptor, check_host, resolve
from imagist.telemetry.logging import bind
from imagist.telemetry.metrics import inc_request, observe, transform_latency_seconds

_log = logging.getLogger(__name__)


class State(str, enum.Enum):
    INIT = "init"
    GUARDED = "guarded"
    FETCHING = "fetching"
    SNIFFING = "sniffing"
    BUILDING = "building"
    TRANSFORMING = "transforming"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TransformResult:
    stream: AsyncIterator[bytes]
    mime: str
    resources: List[AsyncIterator[bytes]] = field(default_factory=list)

    async def aclose(self) -> None:
        await _release([*self.resources, self.stream])


class _Run:
    """Tracks the state of one request for logging."""

    def __init__(self, raw_source: Optional[str]) -> None:
        self.state = State.INIT
        self.log = bind(_log, source=raw_source)

    def to(self, state: State) -> None:
        self.log.debug("state %s -> %s", self.state.value, state.value)
        self.state = state

    def fail(self, exc: BaseException) -> None:
        self.log.info(
            "request failed in %s: %s",
            self.state.value,
            exc,
            extra={"code": getattr(exc, "code", type(exc).__name__)},
        )
        self.state = State.FAILED


async def _close(stream: AsyncIterator[bytes]) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


async def _release(streams: List[AsyncIterator[bytes]]) -> None:
    # innermost (upstream) last, so consumers close before their sources
    for stream in reversed(streams):
        await _close(stream)


async def _replay_first(
    first: bytes, rest: AsyncIterator[bytes], run: _Run
) -> AsyncIterator[bytes]:
    run.to(State.STREAMING)
    try:
        yield first
        async for chunk in rest:
            yield chunk
    except (GeneratorExit, asyncio.CancelledError):
        run.log.info("client went away while streaming")
        run.state = State.FAILED
        raise
    except Exception as exc:
        # headers are already out; the server aborts the connection
        run.fail(exc)
        raise
    else:
        run.to(State.DONE)
    finally:
        await _close(rest)


async def _prime(stream: AsyncIterator[bytes], run: _Run) -> AsyncIterator[bytes]:
    """Pull the first chunk now so engine failures happen before streaming."""
    it = stream.__aiter__()
    try:
        with observe(transform_latency_seconds):
            first = await it.__anext__()
    except StopAsyncIteration:
        await _close(it)
        raise TransformFailure("Transform produced no output.") from None
    except BaseException:
        await _close(it)
        raise
    return _replay_first(first, it, run)


async def _acquire(
    source: SourceDescriptor,
    settings: Settings,
    client: Optional[httpx.AsyncClient],
) -> FetchedSource:
    if source.path is not None:
        return await fetch_local(
            source.path, chunk_size=settings.chunk_size, max_bytes=settings.max_source_bytes
        )
    if client is None:
        client = get_http_client(settings)
    assert source.url is not None
    return await fetch_remote(
        client,
        str(source.url),
        allowlist=settings.effective_allowlist(),
        ttfb_timeout=settings.fetch_ttfb_timeout_s,
        max_redirects=settings.max_redirects,
        max_bytes=settings.max_source_bytes,
        user_agent=settings.user_agent,
    )


async def handle(
    raw_source: Optional[str],
    query: Mapping[str, str],
    *,
    settings: Optional[Settings] = None,
    engine: Optional[TransformEngine] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> TransformResult:
    """
    Resolve, guard, fetch, sniff and transform one image request.

    Raises an ImagistError subclass on any structural failure. Parameter
    problems in ``query`` never raise; they fall back to defaults.
    """
    cfg = settings or Settings()
    run = _Run(raw_source)
    owned: List[AsyncIterator[bytes]] = []
    try:
        source = resolve(
            raw_source,
            query,
            base_host=cfg.base_host,
            tls=cfg.tls,
            local_root=cfg.local_root,
        )
        if source.host is not None:
            check_host(source.host, cfg.effective_allowlist())
        run.to(State.GUARDED)

        run.to(State.FETCHING)
        fetched = await _acquire(source, cfg, client)
        owned.append(fetched.stream)

        run.to(State.SNIFFING)
        accepted = set(cfg.accepted_types) | set(cfg.passthrough_types)
        sniffed = await sniff(fetched.stream, accepted, window=cfg.sniff_window)
        stream = sniffed.stream
        owned.append(stream)

        if sniffed.mime in cfg.passthrough_types:
            run.log.debug("passthrough", extra={"mime": sniffed.mime})
            result = TransformResult(
                stream=await _prime(stream, run), mime=sniffed.mime, resources=owned
            )
            inc_request("ok")
            return result

        run.to(State.BUILDING)
        spec = options_mod.parse(query, cfg.parser_policy())
        operations = pipeline_mod.build(spec, sniffed.mime)

        run.to(State.TRANSFORMING)
        active_engine = engine or PillowEngine(
            chunk_size=cfg.chunk_size, max_pixels=cfg.max_output_pixels
        )
        output = active_engine.transform(stream, operations)
        owned.append(output)
        primed = await _prime(output, run)
    except ImagistError as exc:
        run.fail(exc)
        inc_request(exc.code)
        await _release(owned)
        raise
    except BaseException:
        run.state = State.FAILED
        inc_request("internal_error")
        await _release(owned)
        raise

    inc_request("ok")
    return TransformResult(stream=primed, mime=operations.mime, resources=owned)


__all__ = ["State", "TransformResult", "handle"]
