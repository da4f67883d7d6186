"""Logging configuration and secret redaction for the proxy.

Structured context is attached to records as ``extra={"context": {...}}``.
Every context is passed through :func:`redact_context` before it is emitted,
whatever the level, handler or environment.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, MutableMapping, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

SENSITIVE_HEADERS = frozenset({"x-api-key", "authorization", "proxy-api-key"})
SENSITIVE_BODY_FIELDS = frozenset({"api_key"})


def redact_headers(headers: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``headers`` without credential-bearing entries."""
    return {k: v for k, v in headers.items() if k.lower() not in SENSITIVE_HEADERS}


def redact_body(body: Any) -> Any:
    """Return a copy of a body-shaped payload without ``api_key`` fields.

    Nested mappings and lists are walked; anything else is returned as is.
    """
    if isinstance(body, Mapping):
        return {
            k: redact_body(v)
            for k, v in body.items()
            if not (isinstance(k, str) and k.lower() in SENSITIVE_BODY_FIELDS)
        }
    if isinstance(body, list):
        return [redact_body(item) for item in body]
    return body


def redact_context(context: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Redact the ``headers`` and ``body`` members of a log context."""
    if not context:
        return {}
    out = dict(context)
    headers = out.get("headers")
    if isinstance(headers, Mapping):
        out["headers"] = redact_headers(headers)
    if "body" in out:
        out["body"] = redact_body(out["body"])
    return out


class RedactionFilter(logging.Filter):
    """Handler filter that redacts ``record.context`` of any logger's records."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = getattr(record, "context", None)
        if isinstance(context, Mapping):
            record.context = redact_context(context)
        return True


class ContextFormatter(logging.Formatter):
    """Appends the record context, when present, as a JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            line = f"{line} {json.dumps(context, default=str, sort_keys=True)}"
        return line


class ProxyLogger(logging.LoggerAdapter):
    """Logger adapter that redacts the structured context at the call site."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        if "context" in extra:
            extra["context"] = redact_context(extra["context"])
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ProxyLogger:
    return ProxyLogger(logging.getLogger(name), {})


_installed: list[logging.Handler] = []


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure root logging with a console handler and an optional file.

    Does nothing when the root logger already has handlers.
    """
    if logging.getLogger().handlers:
        return
    formatter = ContextFormatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(RedactionFilter())
    logging.basicConfig(level=level.upper(), handlers=handlers)
    _installed.extend(handlers)


def shutdown_logging() -> None:
    """Flush, close and detach the handlers installed by setup_logging."""
    root = logging.getLogger()
    while _installed:
        handler = _installed.pop()
        handler.flush()
        handler.close()
        root.removeHandler(handler)
