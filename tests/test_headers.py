import httpx

from anthropic_proxy.services.headers import (
    DEFAULT_ANTHROPIC_VERSION,
    normalize_headers,
    relay_response_headers,
    transform_request_headers,
)


def test_drops_local_headers_and_keeps_credential():
    inbound = {
        "Host": "proxy.local",
        "Content-Length": "42",
        "proxy-api-key": "local-secret",
        "x-api-key": "sk-test",
        "x-custom": "kept",
    }
    out = transform_request_headers(inbound)
    assert "host" not in out
    assert "content-length" not in out
    assert "proxy-api-key" not in out
    assert out["x-api-key"] == "sk-test"
    assert out["x-custom"] == "kept"


def test_injects_defaults_when_absent():
    out = transform_request_headers({"x-api-key": "sk-test"})
    assert out["anthropic-version"] == DEFAULT_ANTHROPIC_VERSION == "2023-06-01"
    assert out["content-type"] == "application/json"


def test_existing_values_pass_through_and_transform_is_idempotent():
    inbound = {
        "anthropic-version": "2024-01-01",
        "content-type": "text/plain",
        "anthropic-beta": "tools-2024-04-04",
    }
    once = transform_request_headers(inbound)
    assert once["anthropic-version"] == "2024-01-01"
    assert once["content-type"] == "text/plain"
    assert once["anthropic-beta"] == "tools-2024-04-04"
    assert transform_request_headers(once) == once


def test_transform_copies_instead_of_mutating():
    inbound = {"host": "proxy.local", "x-api-key": "sk-test"}
    out = transform_request_headers(inbound)
    out["x-extra"] = "1"
    assert inbound == {"host": "proxy.local", "x-api-key": "sk-test"}


def test_hop_by_hop_headers_are_not_forwarded():
    out = transform_request_headers({
        "connection": "keep-alive",
        "transfer-encoding": "chunked",
        "te": "trailers",
        "accept-encoding": "gzip",
    })
    assert "connection" not in out
    assert "transfer-encoding" not in out
    assert "te" not in out
    assert out["accept-encoding"] == "gzip"


def test_normalize_is_case_insensitive_and_last_wins():
    raw = [(b"X-Api-Key", b"first"), (b"accept", b"*/*"), (b"x-api-key", b"second")]
    out = normalize_headers(raw)
    assert out == {"x-api-key": "second", "accept": "*/*"}
    assert list(out) == ["x-api-key", "accept"]


def test_relay_headers_keep_duplicates_and_drop_hop_by_hop():
    upstream = httpx.Headers([
        ("content-type", "text/event-stream"),
        ("set-cookie", "a=1"),
        ("set-cookie", "b=2"),
        ("transfer-encoding", "chunked"),
        ("request-id", "req_123"),
    ])
    out = relay_response_headers(upstream)
    assert (b"set-cookie", b"a=1") in out
    assert (b"set-cookie", b"b=2") in out
    assert (b"request-id", b"req_123") in out
    assert all(name != b"transfer-encoding" for name, _ in out)
