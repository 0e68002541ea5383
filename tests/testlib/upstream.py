from __future__ import annotations

from typing import Callable, Dict, List, Optional

import httpx


class Upstream:
    """Scripted origin server behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        url: str,
        *,
        status: int = 200,
        content: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.routes[url] = lambda request: httpx.Response(
            status, content=content, headers=headers or {}
        )

    def redirect(self, url: str, location: str, status: int = 302) -> None:
        self.add(url, status=status, headers={"Location": location})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404)
        return route(request)

    def requested(self) -> List[str]:
        return [str(r.url) for r in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
