from __future__ import annotations

from typing import Any

from core.errors import UpstreamSendError
from core.http_json import HttpJsonClient, HttpTransportError, UrllibHttpJsonClient
from whatsapp.message_templates import truncate

DEFAULT_API_BASE_URL = "https://graph.facebook.com"
DEFAULT_API_VERSION = "v22.0"


class WhatsAppMessageClient:
    def __init__(
        self,
        access_token: str,
        phone_number_id: str | None = None,
        api_base_url: str = DEFAULT_API_BASE_URL,
        api_version: str = DEFAULT_API_VERSION,
        timeout_sec: float = 10.0,
        http_client: HttpJsonClient | None = None,
    ) -> None:
        self.access_token = (access_token or "").strip()
        self.phone_number_id = (phone_number_id or "").strip()
        self.api_base_url = (api_base_url or DEFAULT_API_BASE_URL).rstrip("/")
        self.api_version = (api_version or DEFAULT_API_VERSION).strip("/")
        self.timeout_sec = float(timeout_sec)
        self.http_client = http_client or UrllibHttpJsonClient()

    def send_text(self, recipient_id: str, body: str, phone_number_id: str | None = None) -> dict[str, Any]:
        if not self.access_token:
            raise UpstreamSendError("whatsapp.access_token is required")
        target = (recipient_id or "").strip()
        if not target:
            raise UpstreamSendError("recipient id is empty")
        sender_phone_id = (phone_number_id or self.phone_number_id or "").strip()
        if not sender_phone_id:
            raise UpstreamSendError("phone_number_id is missing from the event and from whatsapp.phone_number_id")
        text = (body or "").strip()
        if not text:
            raise UpstreamSendError("message body is empty")

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": target,
            "type": "text",
            "text": {"preview_url": False, "body": truncate(text)},
        }
        url = f"{self.api_base_url}/{self.api_version}/{sender_phone_id}/messages"
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            resp = self.http_client.request_json("POST", url, payload, headers=headers, timeout_sec=self.timeout_sec)
        except HttpTransportError as exc:
            raise UpstreamSendError(f"whatsapp api connection error: {exc}") from exc
        if not resp.ok:
            error_body = resp.payload.get("error", resp.text) if resp.payload else resp.text
            raise UpstreamSendError("whatsapp api error", status=resp.status, body=error_body)
        return resp.payload
