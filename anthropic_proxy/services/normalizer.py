"""Turns pipeline faults into exactly one log record and one client response."""
from __future__ import annotations

import traceback

from fastapi import Request
from fastapi.responses import JSONResponse
from prometheus_client import Counter

from anthropic_proxy.core.errors import FaultKind, ProxyError, ProxyErrorRecord, RelayAborted
from anthropic_proxy.core.logging import get_logger
from anthropic_proxy.services.ingress import scope_path
from anthropic_proxy.models.results import NetworkFault, UpstreamFault
from anthropic_proxy.models.schemas import ErrorResponse

log = get_logger("Anthropic-Proxy.Errors")

FAULTS = Counter("proxy_faults_total", "Faults by kind", ["kind"])

INTERNAL_ERROR = "Internal Server Error"


class ErrorNormalizer:
    """
    Maps faults to client responses.

    Validation and auth faults keep their own status and message. Network and
    unexpected faults become a generic 500 whose ``message`` is only filled in
    when ``expose_detail`` is set. Upstream faults are only logged here; their
    response is relayed untouched.
    """

    def __init__(self, expose_detail: bool = False):
        self.expose_detail = expose_detail

    def _record(self, kind: FaultKind, status: int, message: str, request: Request) -> ProxyErrorRecord:
        FAULTS.labels(kind=kind.value).inc()
        return ProxyErrorRecord(kind, status, message, request.method, scope_path(request.scope))

    def _internal_error(self, detail: str) -> JSONResponse:
        body = ErrorResponse(error=INTERNAL_ERROR, message=detail if self.expose_detail else None)
        return JSONResponse(body.model_dump(exclude_none=True), status_code=500)

    def client_error(self, exc: ProxyError, request: Request) -> JSONResponse:
        record = self._record(exc.kind, exc.status_code, str(exc), request)
        log.warning("rejected %s %s: %s", record.method, record.path, record.message, extra={"context": record.as_context()})
        return JSONResponse(exc.payload(), status_code=exc.status_code)

    def network_fault(self, fault: NetworkFault, request: Request) -> JSONResponse:
        detail = fault.describe()
        record = self._record(FaultKind.NETWORK, 500, detail, request)
        log.error(
            "no response from upstream for %s %s: %s",
            record.method,
            record.path,
            detail,
            extra={"context": record.as_context()},
        )
        return self._internal_error(detail)

    def unexpected(self, exc: BaseException, request: Request) -> JSONResponse:
        detail = f"{type(exc).__name__}: {exc}"
        record = self._record(FaultKind.UNEXPECTED, 500, detail, request)
        context = record.as_context()
        context["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        log.error("unexpected failure on %s %s: %s", record.method, record.path, detail, extra={"context": context})
        return self._internal_error(detail)

    def upstream_fault(self, result: UpstreamFault, request: Request) -> None:
        record = self._record(FaultKind.UPSTREAM, result.status_code, f"upstream returned {result.status_code}", request)
        log.warning(
            "upstream returned %s for %s %s",
            result.status_code,
            record.method,
            record.path,
            extra={"context": record.as_context()},
        )


def get_normalizer(request: Request) -> ErrorNormalizer:
    normalizer = getattr(request.app.state, "normalizer", None)
    return normalizer if normalizer is not None else ErrorNormalizer()


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    """Exception handler for ProxyError raised anywhere in a route."""
    lifecycle = getattr(request.state, "lifecycle", None)
    if lifecycle is not None and not lifecycle.terminal:
        lifecycle.fail(exc.kind.value)
    return get_normalizer(request).client_error(exc, request)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for failures outside the forwarding pipeline."""
    if isinstance(exc, RelayAborted):
        # already logged by the relay, and the response has started
        return JSONResponse({"error": INTERNAL_ERROR}, status_code=500)
    return get_normalizer(request).unexpected(exc, request)
