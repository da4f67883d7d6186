"""Per-request value types flowing through the forwarding pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Optional, Union

import httpx


@dataclass(frozen=True)
class InboundRequest:
    """The client request as received. ``headers`` keys are lowercase."""

    method: str
    path: str
    query: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    # Parsed JSON value for JSON requests, otherwise None
    body: Any = None
    # Exact JSON bytes, or a lazy byte stream for any other payload
    content: Union[bytes, AsyncIterator[bytes], None] = None


@dataclass
class Success:
    """Upstream answered with a status below 400."""

    response: httpx.Response

    @property
    def status_code(self) -> int:
        return self.response.status_code


@dataclass
class UpstreamFault:
    """Upstream answered with an error status; relayed verbatim."""

    response: httpx.Response

    @property
    def status_code(self) -> int:
        return self.response.status_code


@dataclass(frozen=True)
class NetworkFault:
    """No response was obtained from upstream."""

    cause: BaseException
    detail: Optional[str] = None

    def describe(self) -> str:
        return self.detail or f"{type(self.cause).__name__}: {self.cause}"


UpstreamResult = Union[Success, UpstreamFault, NetworkFault]
