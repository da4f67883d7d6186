"""API routes for the proxy.

``router`` holds the local endpoints; ``proxy_router`` forwards every method
on every path under the configured prefix to the upstream API.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from anthropic_proxy.core.config import Settings
from anthropic_proxy.core.errors import ProxyError
from anthropic_proxy.core.logging import get_logger
from anthropic_proxy.models.results import NetworkFault, UpstreamFault
from anthropic_proxy.models.schemas import HealthResponse
from anthropic_proxy.services.auth import AuthGate
from anthropic_proxy.services.forwarder import UpstreamForwarder
from anthropic_proxy.services.headers import normalize_headers, transform_request_headers
from anthropic_proxy.services.ingress import read_inbound, scope_path
from anthropic_proxy.services.lifecycle import RequestLifecycle, RequestPhase
from anthropic_proxy.services.normalizer import ErrorNormalizer
from anthropic_proxy.services.relay import relay

log = get_logger("Anthropic-Proxy.API")
router = APIRouter()
proxy_router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def _lifecycle(request: Request) -> RequestLifecycle:
    """Lifecycle created by the logging middleware, or a fresh one without it."""
    lifecycle = getattr(request.state, "lifecycle", None)
    if lifecycle is None:
        lifecycle = RequestLifecycle(request.method, scope_path(request.scope))
        request.state.lifecycle = lifecycle
    return lifecycle


async def require_credentials(request: Request) -> None:
    """Dependency running the AuthGate before the proxy handler."""
    gate: AuthGate = request.app.state.auth_gate
    gate.check(normalize_headers(request.headers.raw))
    _lifecycle(request).advance(RequestPhase.AUTHENTICATED)


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint; never touches upstream."""
    return HealthResponse()


@proxy_router.api_route("/{path:path}", methods=PROXY_METHODS, dependencies=[Depends(require_credentials)])
async def proxy(request: Request) -> Response:
    """
    Forward the request to ``{upstream}{incoming path}``:
      - headers rewritten by the header rules
      - upstream status < 400 and >= 400 are both relayed verbatim
      - no response at all becomes a generic 500
    """
    settings: Settings = request.app.state.settings
    forwarder: UpstreamForwarder = request.app.state.forwarder
    normalizer: ErrorNormalizer = request.app.state.normalizer
    lifecycle = _lifecycle(request)

    try:
        inbound = await read_inbound(request, settings.max_body_bytes)
        headers = transform_request_headers(inbound.headers)
        lifecycle.advance(RequestPhase.HEADERS_TRANSFORMED)
        lifecycle.advance(RequestPhase.FORWARDING)
        result = await forwarder.forward(inbound, headers)
    except ProxyError:
        raise
    except Exception as e:
        lifecycle.fail("unexpected")
        return normalizer.unexpected(e, request)

    if isinstance(result, NetworkFault):
        lifecycle.fail("network")
        return normalizer.network_fault(result, request)
    if isinstance(result, UpstreamFault):
        normalizer.upstream_fault(result, request)

    log.debug("relaying %s for %s %s", result.status_code, inbound.method, inbound.path)
    return relay(result, lifecycle)
