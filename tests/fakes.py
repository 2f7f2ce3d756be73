from __future__ import annotations

from typing import Any

from core.http_json import JsonResponse


class FakeHttpClient:
    """Records requests and answers from a queue of canned responses."""

    def __init__(self, responses: list[JsonResponse | Exception] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    def request_json(
        self,
        method: str,
        url: str,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout_sec: float = 10.0,
    ) -> JsonResponse:
        self.calls.append(
            {
                "method": method,
                "url": url,
                "payload": payload,
                "headers": dict(headers or {}),
                "timeout_sec": timeout_sec,
            }
        )
        if not self.responses:
            return JsonResponse(status=200, payload={"code": 0})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def text_event(
    text: str,
    message_id: str = "wamid.1",
    sender_id: str = "5211234567",
    phone_number_id: str = "1098765",
) -> dict[str, Any]:
    return message_event(
        {"from": sender_id, "id": message_id, "timestamp": "1700000000", "type": "text", "text": {"body": text}},
        phone_number_id=phone_number_id,
    )


def message_event(message: dict[str, Any], phone_number_id: str = "1098765") -> dict[str, Any]:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WABA",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"display_phone_number": "5215500000000", "phone_number_id": phone_number_id},
                            "contacts": [{"profile": {"name": "Ana"}, "wa_id": message.get("from", "")}],
                            "messages": [message],
                        },
                    }
                ],
            }
        ],
    }


def status_event() -> dict[str, Any]:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WABA",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"phone_number_id": "1098765"},
                            "statuses": [{"id": "wamid.1", "status": "delivered", "recipient_id": "521"}],
                        },
                    }
                ],
            }
        ],
    }
