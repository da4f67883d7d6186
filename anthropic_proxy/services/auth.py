"""Credential checks run before anything is forwarded."""
from __future__ import annotations

import hmac
from typing import Mapping, Optional

from anthropic_proxy.core.errors import AuthFault, missing_api_key

PROXY_KEY_HEADER = "proxy-api-key"
UPSTREAM_KEY_HEADER = "x-api-key"


class AuthGate:
    """
    Two ordered, independent checks over lowercased request headers:

      1. the proxy secret, only when one is configured (401 on mismatch);
      2. presence of the upstream credential (400 when absent).

    The upstream credential's value is never inspected; upstream owns that.
    """

    def __init__(self, proxy_api_key: Optional[str] = None):
        self._secret = proxy_api_key.encode("utf-8") if proxy_api_key else None

    @property
    def enabled(self) -> bool:
        return self._secret is not None

    def check_proxy_secret(self, headers: Mapping[str, str]) -> None:
        if self._secret is None:
            return
        supplied = headers.get(PROXY_KEY_HEADER)
        if supplied is None or not hmac.compare_digest(supplied.encode("utf-8"), self._secret):
            raise AuthFault()

    def check_upstream_credential(self, headers: Mapping[str, str]) -> None:
        if not headers.get(UPSTREAM_KEY_HEADER):
            raise missing_api_key()

    def check(self, headers: Mapping[str, str]) -> None:
        """Raise the first failing check's fault; return quietly otherwise."""
        self.check_proxy_secret(headers)
        self.check_upstream_credential(headers)
