from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from core.errors import UpstreamAuthError
from core.http_json import HttpJsonClient, HttpTransportError, UrllibHttpJsonClient

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://open.larksuite.com"
TENANT_TOKEN_PATH = "/open-apis/auth/v3/tenant_access_token/internal"
DEFAULT_TOKEN_TTL_SEC = 3600


class TenantTokenProvider:
    """Caches the Lark tenant access token and refreshes it ahead of expiry.

    Refreshes hold a lock, and a caller that waited on it re-checks the cache,
    so concurrent callers trigger at most one credential exchange.
    """

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        api_base_url: str = DEFAULT_API_BASE_URL,
        refresh_margin_sec: float = 60,
        timeout_sec: float = 10.0,
        http_client: HttpJsonClient | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.app_id = (app_id or "").strip()
        self.app_secret = (app_secret or "").strip()
        self.api_base_url = (api_base_url or DEFAULT_API_BASE_URL).rstrip("/")
        self.refresh_margin_sec = max(0.0, float(refresh_margin_sec))
        self.timeout_sec = float(timeout_sec)
        self.http_client = http_client or UrllibHttpJsonClient()
        self._clock = clock or time.time
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def get_access_token(self) -> str:
        token = self._cached_token()
        if token is not None:
            return token
        with self._lock:
            token = self._cached_token()
            if token is not None:
                return token
            return self._refresh()

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = 0.0

    def _cached_token(self) -> str | None:
        token = self._token
        if token and self._expires_at - self._clock() > self.refresh_margin_sec:
            return token
        return None

    def _refresh(self) -> str:
        if not self.app_id or not self.app_secret:
            raise UpstreamAuthError("bitable.app_id and bitable.app_secret are required")
        url = f"{self.api_base_url}{TENANT_TOKEN_PATH}"
        payload = {"app_id": self.app_id, "app_secret": self.app_secret}
        requested_at = self._clock()
        try:
            resp = self.http_client.request_json("POST", url, payload, timeout_sec=self.timeout_sec)
        except HttpTransportError as exc:
            raise UpstreamAuthError(f"lark token connection error: {exc}") from exc

        data = resp.payload
        code = data.get("code")
        if not resp.ok or code != 0:
            raise UpstreamAuthError("lark token error", status=resp.status, code=code, body=data.get("msg", resp.text))
        token = str(data.get("tenant_access_token", "") or "").strip()
        if not token:
            raise UpstreamAuthError("lark token error: response has no tenant_access_token", status=resp.status)

        ttl = _as_positive_int(data.get("expire")) or DEFAULT_TOKEN_TTL_SEC
        self._token = token
        self._expires_at = requested_at + ttl
        logger.info("lark-token-refreshed expires_in=%d", ttl)
        return token


def _as_positive_int(value: object) -> int | None:
    try:
        parsed = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None
