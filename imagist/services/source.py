"""
Source resolution and the host allow-list.

``resolve`` turns the raw path parameter into either a remote URL or a path
under the configured local root. ``guard`` must pass before any socket is
opened; the fetcher calls it again for every redirect hop.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional
from urllib.parse import urlsplit

import httpx

from imagist.services.coerce import to_bool
from imagist.services.errors import HostNotAllowed, InvalidSourceURL, MissingSource

_log = logging.getLogger(__name__)

_ALLOWED_SCHEMES = ("http", "https")
# "https:/host/a.jpg" shows up when a proxy collapses duplicate slashes
_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*):(/+)(.*)$", re.S)


@dataclass(frozen=True)
class SourceDescriptor:
    raw_param: str
    url: Optional[httpx.URL] = None
    path: Optional[Path] = None
    host: Optional[str] = None

    @property
    def is_local(self) -> bool:
        return self.path is not None


def hostname(url: str) -> str:
    """Hostname of ``url`` with its original case; userinfo and port removed."""
    netloc = urlsplit(url).netloc.rpartition("@")[2]
    if netloc.startswith("["):
        end = netloc.find("]")
        return netloc[1:end] if end > 0 else netloc[1:]
    return netloc.split(":", 1)[0]


def _remote(raw_param: str, text: str) -> SourceDescriptor:
    try:
        url = httpx.URL(text)
    except (httpx.InvalidURL, ValueError) as exc:
        raise InvalidSourceURL(f"Invalid URL: {exc}") from exc
    if url.scheme not in _ALLOWED_SCHEMES or not url.host:
        raise InvalidSourceURL("Invalid URL.")
    return SourceDescriptor(raw_param=raw_param, url=url, host=hostname(text))


def _local(raw_param: str, rest: str, root: Path) -> SourceDescriptor:
    base = root.resolve()
    candidate = (base / rest).resolve()
    try:
        candidate.relative_to(base)
    except ValueError:
        raise InvalidSourceURL("Path escapes the local root.") from None
    return SourceDescriptor(raw_param=raw_param, path=candidate)


def resolve(
    raw_param: Optional[str],
    query: Mapping[str, str],
    *,
    base_host: Optional[str] = None,
    tls: bool = False,
    local_root: Optional[Path] = None,
) -> SourceDescriptor:
    if raw_param is None:
        raise MissingSource("Source URL is required.")
    rest = raw_param[1:] if raw_param.startswith("/") else raw_param
    if not rest.strip():
        raise MissingSource("URL is required.")

    m = _SCHEME_RE.match(rest)
    if m:
        scheme = m.group(1).lower()
        if scheme not in _ALLOWED_SCHEMES:
            raise InvalidSourceURL(f"Unsupported scheme: {scheme}")
        return _remote(raw_param, f"{scheme}://{m.group(3)}")

    host_param = (query.get("host") or "").strip().strip("/") or None
    host = host_param or (base_host.strip().strip("/") if base_host else None)

    if local_root is not None and host is None:
        return _local(raw_param, rest, local_root)

    if "ssl" in query:
        scheme = "https" if to_bool(query.get("ssl")) else "http"
    else:
        scheme = "https" if tls else "http"

    if host:
        return _remote(raw_param, f"{scheme}://{host}/{rest.lstrip('/')}")
    return _remote(raw_param, f"{scheme}://{rest}")


def check_host(host: str, allowlist: Iterable[str]) -> None:
    """Raise HostNotAllowed unless ``host`` is an exact allow-list member.

    An empty allow-list permits every host. Matching is case-sensitive.
    """
    allowed = set(allowlist)
    if not allowed:
        return
    if host not in allowed:
        _log.info("host rejected by allow-list", extra={"host": host})
        raise HostNotAllowed(host)


def guard(url: str, allowlist: Iterable[str]) -> None:
    # httpx.URL lower-cases hosts; pass the raw string to keep exact matching
    check_host(hostname(url), allowlist)


__all__ = ["SourceDescriptor", "hostname", "resolve", "check_host", "guard"]
