"""Per-request phase tracking for the forwarding pipeline."""
from __future__ import annotations

import time
from enum import Enum
from typing import Optional


class RequestPhase(str, Enum):
    RECEIVED = "received"
    AUTHENTICATED = "authenticated"
    HEADERS_TRANSFORMED = "headers_transformed"
    FORWARDING = "forwarding"
    RELAYING = "relaying"
    COMPLETED = "completed"
    FAILED = "failed"


_NEXT = {
    RequestPhase.RECEIVED: RequestPhase.AUTHENTICATED,
    RequestPhase.AUTHENTICATED: RequestPhase.HEADERS_TRANSFORMED,
    RequestPhase.HEADERS_TRANSFORMED: RequestPhase.FORWARDING,
    RequestPhase.FORWARDING: RequestPhase.RELAYING,
    RequestPhase.RELAYING: RequestPhase.COMPLETED,
}

TERMINAL = frozenset({RequestPhase.COMPLETED, RequestPhase.FAILED})


class InvalidTransition(RuntimeError):
    pass


class RequestLifecycle:
    """
    Linear state machine ``received -> ... -> completed``.

    ``fail()`` is allowed from any non-terminal phase. Terminal phases are
    final, so nothing can re-enter ``forwarding``.
    """

    def __init__(self, method: str, path: str):
        self.method = method
        self.path = path
        self.phase = RequestPhase.RECEIVED
        self.started = time.perf_counter()
        self.failure: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.phase in TERMINAL

    def advance(self, phase: RequestPhase) -> None:
        if _NEXT.get(self.phase) is not phase:
            raise InvalidTransition(f"{self.phase.value} -> {phase.value}")
        self.phase = phase

    def fail(self, reason: str) -> None:
        if self.terminal:
            raise InvalidTransition(f"{self.phase.value} -> failed")
        self.phase = RequestPhase.FAILED
        self.failure = reason

    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started) * 1000, 2)
