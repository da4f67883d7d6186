"""Request logging and security header middleware.

Plain ASGI (not BaseHTTPMiddleware) so relayed bodies keep streaming; the
completion record is written after the last body chunk has been sent.
"""
from __future__ import annotations

from prometheus_client import Counter, Histogram
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from anthropic_proxy.core.logging import get_logger
from anthropic_proxy.services.headers import normalize_headers
from anthropic_proxy.services.ingress import scope_path
from anthropic_proxy.services.lifecycle import RequestLifecycle, RequestPhase

log = get_logger("Anthropic-Proxy.Requests")

REQUESTS = Counter("proxy_requests_total", "Requests handled by the proxy", ["method", "status"])
DURATION = Histogram("proxy_request_duration_seconds", "Request duration including body relay")


class RequestLoggingMiddleware:
    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope_path(scope)
        lifecycle = RequestLifecycle(scope["method"], path)
        scope.setdefault("state", {})["lifecycle"] = lifecycle
        status = {"code": 500}

        log.debug(
            "received %s %s",
            lifecycle.method,
            path,
            extra={"context": {"method": lifecycle.method, "path": path,
                               "headers": normalize_headers(scope.get("headers", []))}},
        )

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                status["code"] = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            elapsed = lifecycle.elapsed_ms()
            REQUESTS.labels(method=lifecycle.method, status=str(status["code"])).inc()
            DURATION.observe(elapsed / 1000)
            log.info(
                "%s %s -> %s (%.2fms)",
                lifecycle.method,
                path,
                status["code"],
                elapsed,
                extra={"context": {
                    "method": lifecycle.method,
                    "path": path,
                    "status": status["code"],
                    "duration_ms": elapsed,
                    "phase": lifecycle.phase.value,
                }},
            )


SECURITY_HEADERS = [
    (b"cross-origin-opener-policy", b"same-origin"),
    (b"cross-origin-resource-policy", b"same-origin"),
    (b"origin-agent-cluster", b"?1"),
    (b"referrer-policy", b"no-referrer"),
    (b"strict-transport-security", b"max-age=15552000; includeSubDomains"),
    (b"x-content-type-options", b"nosniff"),
    (b"x-dns-prefetch-control", b"off"),
    (b"x-download-options", b"noopen"),
    (b"x-frame-options", b"SAMEORIGIN"),
    (b"x-permitted-cross-domain-policies", b"none"),
    (b"x-xss-protection", b"0"),
]


class SecurityHeadersMiddleware:
    """
    Adds browser hardening headers to responses the proxy produces itself
    (health, metrics, local errors). Relayed upstream responses pass through
    with exactly the headers upstream sent; a header already present on a
    local response is left alone.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start" and not _is_relayed(scope):
                headers = list(message.get("headers", []))
                present = {name.lower() for name, _ in headers}
                headers.extend(h for h in SECURITY_HEADERS if h[0] not in present)
                message = {**message, "headers": headers}
            await send(message)

        await self.app(scope, receive, send_wrapper)


def _is_relayed(scope: Scope) -> bool:
    lifecycle = scope.get("state", {}).get("lifecycle")
    return lifecycle is not None and lifecycle.phase is RequestPhase.RELAYING
