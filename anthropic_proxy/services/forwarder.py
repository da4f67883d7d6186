"""Outbound leg of the proxy.

Issues the upstream request with httpx in streaming mode and classifies the
outcome into Success / UpstreamFault / NetworkFault without touching the body.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Mapping, Optional

import httpx
from prometheus_client import Counter, Histogram

from anthropic_proxy.core.config import Settings
from anthropic_proxy.core.logging import get_logger
from anthropic_proxy.models.results import (
    InboundRequest,
    NetworkFault,
    Success,
    UpstreamFault,
    UpstreamResult,
)

log = get_logger("Anthropic-Proxy.Forwarder")

UPSTREAM_LATENCY = Histogram(
    "proxy_upstream_header_latency_seconds", "Time until upstream response headers arrive"
)
UPSTREAM_OUTCOMES = Counter("proxy_upstream_outcomes_total", "Upstream call outcomes", ["outcome"])


def _param_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def body_to_params(body: Any) -> list[tuple[str, str]]:
    """
    Flatten a structured body into query parameters.

    Only top-level fields of a JSON object are used: ``None`` is skipped,
    lists become repeated keys, nested objects are sent as compact JSON.
    """
    if not isinstance(body, Mapping):
        return []
    params: list[tuple[str, str]] = []
    for key, value in body.items():
        if value is None:
            continue
        if isinstance(value, list):
            params.extend((str(key), _param_value(v)) for v in value if v is not None)
        else:
            params.append((str(key), _param_value(value)))
    return params


class UpstreamForwarder:
    """
    Sends requests to the single configured upstream.

    Holds the shared httpx.AsyncClient; the response body is returned as an
    unread stream which the caller must relay or close.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str, header_timeout_s: Optional[float] = 60.0):
        self._client = client
        self._base = base_url.rstrip("/")
        self._header_timeout = header_timeout_s

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings: Settings) -> "UpstreamForwarder":
        return cls(client, settings.upstream_base, settings.response_header_timeout_s)

    def target_url(self, path: str, query: str = "") -> str:
        path = path if path.startswith("/") else f"/{path}"
        url = f"{self._base}{path}"
        return f"{url}?{query}" if query else url

    def build_request(self, inbound: InboundRequest, headers: Mapping[str, str]) -> httpx.Request:
        url = self.target_url(inbound.path, inbound.query)
        if inbound.method == "GET":
            # GET carries its structured body as query parameters, never as payload
            params = body_to_params(inbound.body)
            return self._client.build_request(
                inbound.method, url, params=params or None, headers=dict(headers)
            )
        return self._client.build_request(
            inbound.method, url, headers=dict(headers), content=inbound.content
        )

    async def forward(self, inbound: InboundRequest, headers: Mapping[str, str]) -> UpstreamResult:
        """Issue the request once and classify the outcome. No retries."""
        request = self.build_request(inbound, headers)
        log.debug(
            "forwarding %s %s",
            request.method,
            request.url.path,
            extra={"context": {"url": str(request.url), "headers": dict(headers), "body": inbound.body}},
        )

        try:
            with UPSTREAM_LATENCY.time():
                response = await asyncio.wait_for(
                    self._client.send(request, stream=True), timeout=self._header_timeout
                )
        except asyncio.TimeoutError as e:
            UPSTREAM_OUTCOMES.labels(outcome="network").inc()
            return NetworkFault(e, detail=f"Upstream sent no response headers within {self._header_timeout}s")
        except httpx.TransportError as e:
            UPSTREAM_OUTCOMES.labels(outcome="network").inc()
            return NetworkFault(e)

        if response.status_code >= 400:
            UPSTREAM_OUTCOMES.labels(outcome="upstream_error").inc()
            return UpstreamFault(response)
        UPSTREAM_OUTCOMES.labels(outcome="success").inc()
        return Success(response)
