from __future__ import annotations

import hmac
import json
import logging
import time
from typing import Any

from bitable.client import BitableClient
from core.errors import UpstreamError

logger = logging.getLogger(__name__)

ALLOWED_FIELDS = (
    "wa_id",
    "producto_interes",
    "intencion_cliente",
    "nombre",
    "empresa",
    "ubicacion",
    "telefono",
    "email",
)


class LeadsApiHandler:
    """Direct lead creation for callers outside the chat flow (e.g. the spreadsheet engine)."""

    def __init__(self, api_key: str, bitable_client: BitableClient | None) -> None:
        self.api_key = (api_key or "").strip()
        self.bitable_client = bitable_client

    def handle(self, method: str, api_key: str | None, body: Any) -> tuple[int, dict[str, Any]]:
        if (method or "").upper() != "POST":
            return 405, {"ok": False, "error": "Method Not Allowed"}
        received = (api_key or "").strip()
        if not self.api_key or not received or not _keys_match(self.api_key, received):
            return 401, {"ok": False, "error": "Unauthorized"}

        try:
            payload = parse_lead_body(body)
        except ValueError as exc:
            return 400, {"ok": False, "error": f"invalid body: {exc}"}

        fields = pick_lead_fields(payload)
        if not fields.get("wa_id"):
            return 400, {"ok": False, "error": "wa_id is required"}
        if self.bitable_client is None:
            return 503, {"ok": False, "error": "bitable.enabled is false"}

        try:
            record_id = self.bitable_client.create_record(fields)
        except UpstreamError as exc:
            logger.error("leads-api-bitable-failed wa_id=%s error=%s", fields.get("wa_id"), exc)
            return 502, {
                "ok": False,
                "error": "Lark API error",
                "lark_http": exc.status,
                "lark_code": exc.code,
                "lark_msg": exc.body,
            }
        return 200, {"ok": True, "record_id": record_id, "created_at": fields["created_at"]}


def parse_lead_body(body: Any) -> dict[str, Any]:
    if body is None:
        return {}
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, dict):
        return body
    if not isinstance(body, str):
        raise ValueError("body must be a JSON object")

    raw = body.strip()
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        # Tolerate text wrapped around the JSON object.
        start = raw.find("{")
        end = raw.rfind("}")
        if start < 0 or end <= start:
            raise
        parsed = json.loads(raw[start : end + 1])
    if not isinstance(parsed, dict):
        raise ValueError("body must be a JSON object")
    return parsed


def pick_lead_fields(payload: dict[str, Any], now_ms: int | None = None) -> dict[str, Any]:
    fields = {key: payload[key] for key in ALLOWED_FIELDS if payload.get(key) is not None}
    created_at = payload.get("created_at")
    try:
        fields["created_at"] = int(float(created_at)) if created_at not in (None, "") else _now_ms(now_ms)
    except (TypeError, ValueError, OverflowError):
        fields["created_at"] = _now_ms(now_ms)
    return fields


def _now_ms(now_ms: int | None) -> int:
    return now_ms if now_ms is not None else int(time.time() * 1000)


def _keys_match(expected: str, received: str) -> bool:
    # compare_digest rejects non-ASCII str; compare the encoded bytes instead.
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))
