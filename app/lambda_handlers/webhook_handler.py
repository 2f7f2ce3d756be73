from __future__ import annotations

import base64
import json
import os
from typing import Any

from app.config import load_runtime_config
from app.logging_setup import configure_logging
from bitable.leads_api import LeadsApiHandler
from whatsapp.webhook_handler import WhatsAppWebhookHandler

LEADS_API_PATH = "/api/leads"

_handler: WhatsAppWebhookHandler | None = None
_leads_api: LeadsApiHandler | None = None
_webhook_path = "/webhook"


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    _ = context
    handler, leads_api = _get_handlers()

    method = str(event.get("requestContext", {}).get("http", {}).get("method", "")).upper()
    path = str(event.get("rawPath", "") or "")

    if path == LEADS_API_PATH:
        status_code, payload = leads_api.handle(
            method,
            _get_header(event.get("headers", {}), "x-api-key"),
            _decode_body(event),
        )
        return _response(status_code, payload)

    if path and path != _webhook_path:
        return _response(404, {"ok": False, "error": "not_found"})
    if method == "GET":
        params = event.get("queryStringParameters") or {}
        status_code, text = handler.handle_verification(params if isinstance(params, dict) else {})
        return _text_response(status_code, text)
    if method != "POST":
        return _response(405, {"ok": False, "error": "method_not_allowed"})

    status_code, payload = handler.handle_event(_decode_body(event))
    return _response(status_code, payload)


def _get_handlers() -> tuple[WhatsAppWebhookHandler, LeadsApiHandler]:
    global _handler, _leads_api, _webhook_path
    if _handler is None or _leads_api is None:
        config = load_runtime_config(os.getenv("CONFIG_PATH", "config.yaml"))
        configure_logging(config)
        _handler = WhatsAppWebhookHandler(config)
        _leads_api = LeadsApiHandler(
            api_key=str(config.get("leads_api", {}).get("api_key", "") or ""),
            bitable_client=_handler.bitable_client,
        )
        _webhook_path = str(config.get("whatsapp", {}).get("webhook_path", "/webhook"))
    return _handler, _leads_api


def _decode_body(event: dict[str, Any]) -> bytes:
    body = event.get("body", "")
    if body is None:
        return b""
    if bool(event.get("isBase64Encoded", False)):
        return base64.b64decode(str(body))
    return str(body).encode("utf-8")


def _get_header(headers: Any, name: str) -> str | None:
    if not isinstance(headers, dict):
        return None
    needle = name.lower()
    for key, value in headers.items():
        if str(key).lower() == needle:
            return str(value)
    return None


def _response(status_code: int, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {
            "content-type": "application/json; charset=utf-8",
        },
        "body": json.dumps(payload, ensure_ascii=False),
    }


def _text_response(status_code: int, text: str) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {
            "content-type": "text/plain; charset=utf-8",
        },
        "body": text,
    }
