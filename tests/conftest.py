# tests/conftest.py
from contextlib import asynccontextmanager

import httpx
import pytest

from anthropic_proxy.core.config import Settings
from anthropic_proxy.main import create_app

UPSTREAM = "https://upstream.test"


def make_settings(**overrides) -> Settings:
    values = {
        "anthropic_base_url": UPSTREAM,
        "environment": "production",
        "cors_allow_origins": [],
    }
    values.update(overrides)
    return Settings(**values)


class UpstreamRecorder:
    """MockTransport handler that records requests and answers via `reply`."""

    def __init__(self, reply=None):
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []
        self.reply = reply or (lambda request: httpx.Response(200, json={"ok": True}))

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.bodies.append(await request.aread())
        response = self.reply(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response

    @property
    def called(self) -> bool:
        return bool(self.requests)


@asynccontextmanager
async def _open_proxy(upstream=None, transport=None, raise_app_exceptions=True, **overrides):
    if transport is None:
        transport = httpx.MockTransport(upstream or UpstreamRecorder())
    app = create_app(make_settings(**overrides), transport=transport)
    async with app.router.lifespan_context(app):
        asgi = httpx.ASGITransport(app=app, raise_app_exceptions=raise_app_exceptions)
        async with httpx.AsyncClient(transport=asgi, base_url="http://proxy.local") as client:
            client.app = app
            yield client


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def open_proxy():
    """Factory: `async with open_proxy(recorder, **settings) as client`."""
    return _open_proxy
