"""Header rules for the forwarding pipeline.

Inbound headers are copied into a fresh mapping, stripped of the entries that
must not reach upstream, and completed with Anthropic defaults. Response
headers are relayed as-is minus hop-by-hop entries.
"""
from __future__ import annotations

from typing import Iterable, Mapping, Union

import httpx

DEFAULT_ANTHROPIC_VERSION = "2023-06-01"

# RFC 9110 hop-by-hop headers (must not be forwarded)
HOP_BY_HOP = frozenset({
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "te", "trailers", "transfer-encoding", "upgrade",
})

# Never forwarded upstream; httpx derives host and content-length itself
REQUEST_DROP = frozenset({"host", "content-length", "proxy-api-key"}) | HOP_BY_HOP

REQUEST_DEFAULTS = {
    "anthropic-version": DEFAULT_ANTHROPIC_VERSION,
    "content-type": "application/json",
}

HeaderSource = Union[Mapping[str, str], Iterable[tuple[str, str]]]


def normalize_headers(headers: HeaderSource) -> dict[str, str]:
    """Lowercase header names; a repeated name keeps its last value."""
    items = headers.items() if isinstance(headers, Mapping) else headers
    out: dict[str, str] = {}
    for name, value in items:
        if isinstance(name, bytes):
            name = name.decode("latin-1")
        if isinstance(value, bytes):
            value = value.decode("latin-1")
        out[name.lower()] = value
    return out


def transform_request_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Build the outbound header mapping for an upstream request."""
    out = {k: v for k, v in normalize_headers(headers).items() if k not in REQUEST_DROP}
    for name, value in REQUEST_DEFAULTS.items():
        if not out.get(name):
            out[name] = value
    return out


def relay_response_headers(headers: httpx.Headers) -> list[tuple[bytes, bytes]]:
    """Raw ASGI header pairs for the client response, duplicates preserved."""
    return [
        (name.lower(), value)
        for name, value in headers.raw
        if name.decode("latin-1").lower() not in HOP_BY_HOP
    ]
