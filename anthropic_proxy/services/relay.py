"""Streams an upstream response back to the client.

The body is pulled from upstream one chunk at a time, only when the server is
ready to send the previous one, so memory stays bounded. The upstream response
is always closed once the client response ends, including when the client
disconnects half way.
"""
from __future__ import annotations

from typing import AsyncIterator, Optional, Union

import httpx
from fastapi.responses import StreamingResponse
from prometheus_client import Counter
from starlette.types import Receive, Scope, Send

from anthropic_proxy.core.errors import RelayAborted
from anthropic_proxy.core.logging import get_logger
from anthropic_proxy.models.results import Success, UpstreamFault
from anthropic_proxy.services.headers import relay_response_headers
from anthropic_proxy.services.lifecycle import RequestLifecycle, RequestPhase

log = get_logger("Anthropic-Proxy.Relay")

RELAY_ABORTS = Counter("proxy_relay_aborts_total", "Relays that did not complete", ["reason"])


class RelayResponse(StreamingResponse):
    """Client response mirroring an upstream status, headers and raw body."""

    def __init__(self, result: Union[Success, UpstreamFault], lifecycle: Optional[RequestLifecycle] = None):
        self._upstream = result.response
        self._lifecycle = lifecycle
        self.outcome: Optional[str] = None
        super().__init__(self._pump(), status_code=self._upstream.status_code)
        self.raw_headers = relay_response_headers(self._upstream.headers)

    async def _pump(self) -> AsyncIterator[bytes]:
        try:
            if self._upstream.is_stream_consumed:
                # body was loaded before relaying; nothing left to stream
                if self._upstream.content:
                    yield self._upstream.content
            else:
                # raw bytes: no decompression, no re-encoding
                async for chunk in self._upstream.aiter_raw():
                    yield chunk
        except (httpx.HTTPError, httpx.StreamError) as e:
            RELAY_ABORTS.labels(reason="upstream").inc()
            log.error(
                "upstream stream failed while relaying: %s",
                e,
                extra={"context": self._context(cause=f"{type(e).__name__}: {e}")},
            )
            self.outcome = "upstream_error"
            self._mark_failed("upstream stream error")
            raise RelayAborted(str(e)) from e
        self.outcome = "completed"
        if self._lifecycle is not None and self._lifecycle.phase is RequestPhase.RELAYING:
            self._lifecycle.advance(RequestPhase.COMPLETED)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            if self.outcome is None:
                RELAY_ABORTS.labels(reason="client").inc()
                log.info(
                    "client went away before the relay finished; releasing upstream stream",
                    extra={"context": self._context()},
                )
                self._mark_failed("client disconnected")
            await self._upstream.aclose()

    def _mark_failed(self, reason: str) -> None:
        if self._lifecycle is not None and not self._lifecycle.terminal:
            self._lifecycle.fail(reason)

    def _context(self, **extra: str) -> dict:
        context: dict = {"status": self._upstream.status_code}
        if self._lifecycle is not None:
            context.update(method=self._lifecycle.method, path=self._lifecycle.path)
        context.update(extra)
        return context


def relay(result: Union[Success, UpstreamFault], lifecycle: Optional[RequestLifecycle] = None) -> RelayResponse:
    """Hand an upstream result to the client, moving the lifecycle to relaying."""
    if lifecycle is not None:
        lifecycle.advance(RequestPhase.RELAYING)
    return RelayResponse(result, lifecycle)
