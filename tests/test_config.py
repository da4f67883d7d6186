import os

import pytest

from anthropic_proxy.core.config import Settings, load_settings

ENV = [
    "HOST", "PORT", "ANTHROPIC_API_BASE_URL", "PROXY_API_KEY", "ENVIRONMENT", "PROXY_PREFIX",
    "REQUEST_TIMEOUT_S", "RESPONSE_HEADER_TIMEOUT_S", "STREAM_READ_TIMEOUT_S", "MAX_BODY_BYTES",
    "LOG_LEVEL", "LOG_FILE", "CORS_ALLOW_ORIGINS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = load_settings()
    assert s.port == 3000
    assert s.upstream_base == "https://api.anthropic.com"
    assert s.proxy_api_key is None
    assert s.proxy_prefix == "/v1"
    assert s.max_body_bytes == 10 * 1024 * 1024
    assert not s.expose_error_detail
    assert s.effective_log_level == "INFO"
    assert s.cors_allow_origins == ["*"]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("ANTHROPIC_API_BASE_URL", "http://localhost:9000/")
    monkeypatch.setenv("PROXY_API_KEY", "s3cret")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("STREAM_READ_TIMEOUT_S", "0")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example, https://b.example")
    s = load_settings()
    assert s.port == 8080
    assert s.upstream_base == "http://localhost:9000"
    assert s.proxy_api_key == "s3cret"
    assert s.expose_error_detail
    assert s.effective_log_level == "DEBUG"
    assert s.stream_read_timeout_s is None
    assert s.cors_allow_origins == ["https://a.example", "https://b.example"]


def test_blank_proxy_key_means_disabled(monkeypatch):
    monkeypatch.setenv("PROXY_API_KEY", "   ")
    assert load_settings().proxy_api_key is None


@pytest.mark.parametrize("name,value", [("PORT", "eighty"), ("ANTHROPIC_API_BASE_URL", "not a url")])
def test_invalid_values_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(RuntimeError, match="Invalid configuration"):
        load_settings()


def test_settings_are_immutable():
    s = Settings()
    with pytest.raises(Exception):
        s.port = 1


def test_dotenv_file_fills_missing_variables(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("PORT=4100\nPROXY_API_KEY=from-file\n")
    s = load_settings(str(env_file))
    assert s.port == 4100
    assert s.proxy_api_key == "from-file"


def test_process_environment_wins_over_dotenv(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("PORT=4100\n")
    monkeypatch.setenv("PORT", "5200")
    assert load_settings().port == 5200


def test_dotenv_is_found_in_working_directory(tmp_path):
    (tmp_path / ".env").write_text("ENVIRONMENT=development\n")
    assert load_settings().expose_error_detail


def test_dotenv_does_not_touch_process_environment(tmp_path):
    (tmp_path / ".env").write_text("LOG_FILE=proxy.log\n")
    assert load_settings().log_file == "proxy.log"
    assert "LOG_FILE" not in os.environ
