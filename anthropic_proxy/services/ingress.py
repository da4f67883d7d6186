"""Turn a Starlette request into an immutable InboundRequest."""
from __future__ import annotations

import json
from typing import AsyncIterator

from fastapi import Request

from anthropic_proxy.core.errors import invalid_json, payload_too_large
from anthropic_proxy.models.results import InboundRequest
from anthropic_proxy.services.headers import normalize_headers


def scope_path(scope) -> str:
    """Undecoded request path of an ASGI scope, without any query string."""
    raw_path = scope.get("raw_path")
    if raw_path:
        return raw_path.split(b"?", 1)[0].decode("latin-1")
    return scope["path"]


def is_json_media_type(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _has_body(headers: dict[str, str]) -> bool:
    if "transfer-encoding" in headers:
        return True
    length = headers.get("content-length", "").strip()
    return bool(length) and length != "0"


async def _read_capped(request: Request, limit: int) -> bytes:
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        raise payload_too_large(limit)
    buf = bytearray()
    async for chunk in request.stream():
        buf.extend(chunk)
        if len(buf) > limit:
            raise payload_too_large(limit)
    return bytes(buf)


async def _passthrough(request: Request) -> AsyncIterator[bytes]:
    # Pulled by httpx while it writes the upstream request body
    async for chunk in request.stream():
        if chunk:
            yield chunk


async def read_inbound(request: Request, max_body_bytes: int) -> InboundRequest:
    """
    Capture method, raw path, query and headers of ``request``.

    JSON payloads are read fully (bounded by ``max_body_bytes``) and parsed;
    any other payload is left as a lazy stream so it is only read as fast as
    it can be forwarded.
    """
    headers = normalize_headers(request.headers.raw)
    path = scope_path(request.scope)
    query = request.scope.get("query_string", b"").decode("latin-1")

    body = None
    content = None
    if _has_body(headers):
        if is_json_media_type(headers.get("content-type", "")):
            raw = await _read_capped(request, max_body_bytes)
            if raw.strip():
                try:
                    body = json.loads(raw)
                except ValueError as e:
                    raise invalid_json() from e
                content = raw
        else:
            content = _passthrough(request)

    return InboundRequest(
        method=request.method.upper(),
        path=path,
        query=query,
        headers=headers,
        body=body,
        content=content,
    )
