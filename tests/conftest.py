# tests/conftest.py
from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import pytest
from starlette.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from imagist.config import Settings  # noqa: E402
from imagist.main import create_app  # noqa: E402
from tests.testlib.images import make_image  # noqa: E402
from tests.testlib.upstream import Upstream  # noqa: E402


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    # Settings must only see what a test sets explicitly.
    for key in list(os.environ):
        if key.startswith("IMAGIST_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return make_image("JPEG")


@pytest.fixture()
def png_bytes() -> bytes:
    return make_image("PNG", size=(64, 32))


@pytest.fixture()
def settings() -> Settings:
    return Settings(log_json=False, allowed_hosts=["cdn.example.com"])


@pytest.fixture()
def app(settings, upstream):
    # Function scope: new app per test so settings and the mock origin are fresh.
    return create_app(settings, http_client=upstream.client())


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Minimal asyncio support without requiring pytest-asyncio."""

    test_func = pyfuncitem.obj
    if asyncio.iscoroutinefunction(test_func):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            call_kwargs = {
                name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
            }
            loop.run_until_complete(test_func(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None
