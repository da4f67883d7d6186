"""Fault taxonomy for the proxy pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

MISSING_API_KEY_MESSAGE = "Missing Anthropic API key. Please provide it in the x-api-key header."


class FaultKind(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    UPSTREAM = "upstream"
    NETWORK = "network"
    UNEXPECTED = "unexpected"


class ProxyError(Exception):
    """A client-caused fault that short-circuits the pipeline before forwarding."""

    kind = FaultKind.UNEXPECTED
    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None, error: Optional[str] = None):
        super().__init__(message or error or self.error)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error is not None:
            self.error = error

    def payload(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error}
        if self.message:
            body["message"] = self.message
        return body


class ValidationFault(ProxyError):
    """Malformed or incomplete client request."""

    kind = FaultKind.VALIDATION
    status_code = 400
    error = "Bad Request"


class AuthFault(ProxyError):
    """Missing or wrong proxy secret."""

    kind = FaultKind.AUTH
    status_code = 401
    error = "Unauthorized: Invalid proxy API key"


def missing_api_key() -> ValidationFault:
    return ValidationFault(MISSING_API_KEY_MESSAGE)


def payload_too_large(limit: int) -> ValidationFault:
    return ValidationFault(
        f"Request body exceeds the {limit} byte limit.",
        status_code=413,
        error="Payload Too Large",
    )


def invalid_json() -> ValidationFault:
    return ValidationFault("Invalid JSON body")


@dataclass(frozen=True)
class ProxyErrorRecord:
    """What gets logged about a fault. Never carries headers or bodies."""

    kind: FaultKind
    status_code: int
    message: str
    method: str
    path: str

    def as_context(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "status": self.status_code,
            "message": self.message,
            "method": self.method,
            "path": self.path,
        }


class RelayAborted(Exception):
    """The upstream body broke off after the client response had started.

    The relay has already logged and counted the fault when this is raised.
    """
