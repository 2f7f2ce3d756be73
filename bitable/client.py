from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

from bitable.token_provider import DEFAULT_API_BASE_URL, TenantTokenProvider
from core.errors import UpstreamWriteError
from core.http_json import HttpJsonClient, HttpTransportError, JsonResponse, UrllibHttpJsonClient

logger = logging.getLogger(__name__)

# Provider codes for a missing, revoked or expired tenant token.
_INVALID_TOKEN_CODES = {99991663, 99991661, 99991668}
_SEARCH_PAGE_SIZE = 100
_MAX_SEARCH_PAGES = 20


class BitableClient:
    def __init__(
        self,
        token_provider: TenantTokenProvider,
        app_token: str,
        table_id: str,
        api_base_url: str = DEFAULT_API_BASE_URL,
        timeout_sec: float = 10.0,
        external_id_field: str = "wa_id",
        created_at_field: str = "created_at",
        http_client: HttpJsonClient | None = None,
    ) -> None:
        self.token_provider = token_provider
        self.app_token = (app_token or "").strip()
        self.table_id = (table_id or "").strip()
        self.api_base_url = (api_base_url or DEFAULT_API_BASE_URL).rstrip("/")
        self.timeout_sec = float(timeout_sec)
        self.external_id_field = external_id_field
        self.created_at_field = created_at_field
        self.http_client = http_client or UrllibHttpJsonClient()

    @property
    def records_url(self) -> str:
        return f"{self.api_base_url}/open-apis/bitable/v1/apps/{self.app_token}/tables/{self.table_id}/records"

    def create_record(self, fields: dict[str, Any]) -> str:
        data = self._call("POST", self.records_url, {"fields": fields}, action="create")
        record = data.get("record", {}) if isinstance(data, dict) else {}
        record_id = str(record.get("record_id", "") or "")
        logger.info("bitable-record-created record_id=%s", record_id)
        return record_id

    def update_record(self, record_id: str, fields: dict[str, Any]) -> None:
        target = (record_id or "").strip()
        if not target:
            raise UpstreamWriteError("record id is empty")
        self._call("PUT", f"{self.records_url}/{target}", {"fields": fields}, action="update")
        logger.info("bitable-record-updated record_id=%s", target)

    def find_latest_by_external_id(self, external_id: str) -> dict[str, Any] | None:
        value = (external_id or "").strip()
        if not value:
            return None
        body: dict[str, Any] = {
            "filter": {
                "conjunction": "and",
                "conditions": [
                    {"field_name": self.external_id_field, "operator": "is", "value": [value]},
                ],
            },
            "automatic_fields": True,
        }
        items: list[dict[str, Any]] = []
        page_token: str | None = None
        for _ in range(_MAX_SEARCH_PAGES):
            params: dict[str, Any] = {"page_size": _SEARCH_PAGE_SIZE}
            if page_token:
                params["page_token"] = page_token
            url = f"{self.records_url}/search?{urlencode(params)}"
            data = self._call("POST", url, body, action="search")
            page_items = data.get("items") or []
            items.extend(item for item in page_items if isinstance(item, dict))
            page_token = str(data.get("page_token", "") or "") or None
            if not data.get("has_more") or not page_token:
                break
        if not items:
            return None
        return max(items, key=self._created_at_of)

    def _created_at_of(self, item: dict[str, Any]) -> float:
        fields = item.get("fields", {}) if isinstance(item.get("fields"), dict) else {}
        for raw in (fields.get(self.created_at_field), item.get("created_time")):
            try:
                return float(raw)
            except (TypeError, ValueError):
                continue
        return float("-inf")

    def _call(self, method: str, url: str, payload: dict[str, Any], action: str) -> dict[str, Any]:
        resp = self._send(method, url, payload, action)
        code = resp.payload.get("code")
        if code in _INVALID_TOKEN_CODES:
            # Not retried here; the next call exchanges credentials again.
            self.token_provider.invalidate()
        if not resp.ok or code != 0:
            raise UpstreamWriteError(
                f"bitable {action} failed",
                status=resp.status,
                code=code,
                body=resp.payload.get("msg", resp.text) if resp.payload else resp.text,
            )
        data = resp.payload.get("data")
        return data if isinstance(data, dict) else {}

    def _send(self, method: str, url: str, payload: dict[str, Any], action: str) -> JsonResponse:
        if not self.app_token or not self.table_id:
            raise UpstreamWriteError("bitable.app_token and bitable.table_id are required")
        token = self.token_provider.get_access_token()
        headers = {"Authorization": f"Bearer {token}"}
        try:
            return self.http_client.request_json(method, url, payload, headers=headers, timeout_sec=self.timeout_sec)
        except HttpTransportError as exc:
            raise UpstreamWriteError(f"bitable {action} connection error: {exc}") from exc


def create_bitable_client(config: dict[str, Any]) -> BitableClient | None:
    conf = config.get("bitable", {})
    if not bool(conf.get("enabled", False)):
        return None
    api_base_url = str(conf.get("api_base_url", DEFAULT_API_BASE_URL) or DEFAULT_API_BASE_URL)
    timeout_sec = float(conf.get("timeout_sec", 10))
    provider = TenantTokenProvider(
        app_id=str(conf.get("app_id", "") or ""),
        app_secret=str(conf.get("app_secret", "") or ""),
        api_base_url=api_base_url,
        refresh_margin_sec=float(conf.get("token_refresh_margin_sec", 60)),
        timeout_sec=timeout_sec,
    )
    field_map = conf.get("field_map", {}) if isinstance(conf.get("field_map"), dict) else {}
    return BitableClient(
        token_provider=provider,
        app_token=str(conf.get("app_token", "") or ""),
        table_id=str(conf.get("table_id", "") or ""),
        api_base_url=api_base_url,
        timeout_sec=timeout_sec,
        external_id_field=str(field_map.get("sender_id", "wa_id")),
        created_at_field=str(field_map.get("completed_at", "created_at")),
    )
