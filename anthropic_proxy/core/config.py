"""Configuration for the Anthropic API proxy.

Provides strongly-typed settings using Pydantic and a loader from environment
variables (falling back to a `.env` file) with defaults suitable for a
production deployment. Settings are read once at startup and never mutated
afterwards.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional, cast

from dotenv import dotenv_values, find_dotenv
from pydantic import AnyUrl, BaseModel, ConfigDict, ValidationError

DEVELOPMENT_ENVIRONMENTS = {"development", "dev", "local"}


class Settings(BaseModel):
    """Pydantic settings for the proxy service."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 3000
    anthropic_base_url: AnyUrl = cast(AnyUrl, "https://api.anthropic.com")
    # Optional shared secret gating access to the proxy itself
    proxy_api_key: Optional[str] = None
    environment: str = "production"
    proxy_prefix: str = "/v1"
    request_timeout_s: float = 10.0
    response_header_timeout_s: float = 60.0
    # Idle time allowed between two upstream body chunks; None disables it
    stream_read_timeout_s: Optional[float] = 300.0
    max_body_bytes: int = 10 * 1024 * 1024
    log_level: Optional[str] = None
    log_file: Optional[str] = None
    cors_allow_origins: list[str] = ["*"]

    @property
    def upstream_base(self) -> str:
        """Upstream base URL without a trailing slash."""
        return str(self.anthropic_base_url).rstrip("/")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in DEVELOPMENT_ENVIRONMENTS

    @property
    def expose_error_detail(self) -> bool:
        """Whether local fault details may be shown to clients."""
        return self.is_development

    @property
    def effective_log_level(self) -> str:
        if self.log_level:
            return self.log_level.upper()
        return "DEBUG" if self.is_development else "INFO"


def read_environment(env_file: Optional[str] = None) -> dict[str, str]:
    """Process environment layered over a ``.env`` file; real variables win.

    The file is looked up from the working directory upwards unless
    ``env_file`` names one. ``os.environ`` itself is left untouched.
    """
    path = env_file if env_file is not None else find_dotenv(usecwd=True)
    values = {k: v for k, v in dotenv_values(path).items() if v is not None}
    values.update(os.environ)
    return values


def _optional(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name, "").strip()
    return value or None


def _origins(raw: str) -> list[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Load settings from the environment and return a Settings object."""
    env = read_environment(env_file)
    try:
        read_timeout = float(env.get("STREAM_READ_TIMEOUT_S", "300.0"))
        return Settings(
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT", "3000")),
            anthropic_base_url=cast(
                AnyUrl,
                env.get("ANTHROPIC_API_BASE_URL", "https://api.anthropic.com"),
            ),
            proxy_api_key=_optional(env, "PROXY_API_KEY"),
            environment=env.get("ENVIRONMENT", "production"),
            proxy_prefix=env.get("PROXY_PREFIX", "/v1"),
            request_timeout_s=float(env.get("REQUEST_TIMEOUT_S", "10.0")),
            response_header_timeout_s=float(env.get("RESPONSE_HEADER_TIMEOUT_S", "60.0")),
            stream_read_timeout_s=read_timeout if read_timeout > 0 else None,
            max_body_bytes=int(env.get("MAX_BODY_BYTES", str(10 * 1024 * 1024))),
            log_level=_optional(env, "LOG_LEVEL"),
            log_file=_optional(env, "LOG_FILE"),
            cors_allow_origins=_origins(env.get("CORS_ALLOW_ORIGINS", "*")),
        )
    except (ValidationError, ValueError) as e:
        raise RuntimeError(f"Invalid configuration: {e}") from e


settings = load_settings()
