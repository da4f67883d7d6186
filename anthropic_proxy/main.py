"""Anthropic API proxy FastAPI application.

Creates the proxy service, wires routes and middleware, configures logging,
and exposes health and Prometheus metrics endpoints.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from anthropic_proxy.api.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from anthropic_proxy.api.routes import PROXY_METHODS, proxy, proxy_router, require_credentials, router
from anthropic_proxy.core.config import Settings, settings as default_settings
from anthropic_proxy.core.errors import ProxyError
from anthropic_proxy.core.logging import get_logger, setup_logging, shutdown_logging
from anthropic_proxy.services.auth import AuthGate
from anthropic_proxy.services.forwarder import UpstreamForwarder
from anthropic_proxy.services.normalizer import ErrorNormalizer, proxy_error_handler, unhandled_error_handler

log = get_logger("Anthropic-Proxy")


def upstream_timeout(settings: Settings) -> httpx.Timeout:
    """Connect/write/pool bounded by request_timeout_s; reads by the stream idle limit."""
    return httpx.Timeout(settings.request_timeout_s, read=settings.stream_read_timeout_s)


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the proxy application.

    ``transport`` replaces the network transport of the upstream client
    (tests pass an ``httpx.MockTransport``).
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan.

        Initializes logging and the upstream HTTP pool, and ensures they live
        for the duration of the app. Log handlers are flushed on shutdown.
        """
        setup_logging(settings.effective_log_level, settings.log_file)
        async with httpx.AsyncClient(
            timeout=upstream_timeout(settings),
            transport=transport,
            follow_redirects=False,
        ) as client:
            app.state.forwarder = UpstreamForwarder.from_settings(client, settings)
            log.info(
                "proxying %s/* to %s",
                settings.proxy_prefix.rstrip("/"),
                settings.upstream_base,
                extra={"context": {"proxy_secret": settings.proxy_api_key is not None,
                                   "environment": settings.environment}},
            )
            yield
        log.info("proxy shutting down")
        shutdown_logging()

    app = FastAPI(title="Anthropic API Proxy", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.auth_gate = AuthGate(settings.proxy_api_key)
    app.state.normalizer = ErrorNormalizer(expose_detail=settings.expose_error_detail)

    app.add_exception_handler(ProxyError, proxy_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(SecurityHeadersMiddleware)
    # added last so it wraps the others and sees every response
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(router)

    @app.get("/metrics")
    async def metrics(_: Request):
        """Prometheus exposition endpoint for proxy process metrics."""
        data = generate_latest()
        return PlainTextResponse(data.decode("utf-8"), media_type=CONTENT_TYPE_LATEST)

    prefix = settings.proxy_prefix.rstrip("/")
    app.include_router(proxy_router, prefix=prefix)
    if prefix:
        # the bare prefix, which redirect_slashes would otherwise answer with a 307
        app.add_api_route(
            prefix,
            proxy,
            methods=PROXY_METHODS,
            dependencies=[Depends(require_credentials)],
            include_in_schema=False,
        )

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve ``app`` on the configured host and port."""
    uvicorn.run(app, host=default_settings.host, port=default_settings.port)
