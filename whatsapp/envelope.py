from __future__ import annotations

from typing import Any

from core.errors import MalformedEnvelope
from core.models import InboundMessage


def extract_inbound_message(payload: Any) -> InboundMessage | None:
    """Picks entry[0].changes[0].value.messages[0] out of a Cloud API webhook.

    Returns None for payloads that carry no message (delivery/read status
    callbacks). Raises MalformedEnvelope when the nesting itself is wrong.
    """
    if not isinstance(payload, dict):
        raise MalformedEnvelope("payload must be a JSON object")
    entries = payload.get("entry")
    if not isinstance(entries, list) or not entries:
        raise MalformedEnvelope("payload has no entry list")
    entry = entries[0]
    if not isinstance(entry, dict):
        raise MalformedEnvelope("entry[0] must be an object")
    changes = entry.get("changes")
    if not isinstance(changes, list) or not changes or not isinstance(changes[0], dict):
        raise MalformedEnvelope("entry[0] has no changes list")
    value = changes[0].get("value")
    if not isinstance(value, dict):
        raise MalformedEnvelope("changes[0].value must be an object")

    messages = value.get("messages")
    if not messages:
        return None
    if not isinstance(messages, list) or not isinstance(messages[0], dict):
        raise MalformedEnvelope("value.messages must be a list of objects")
    message = messages[0]

    sender_id = str(message.get("from", "") or "").strip()
    if not sender_id:
        raise MalformedEnvelope("message has no sender")
    metadata = _as_dict(value.get("metadata"))
    message_type = str(message.get("type", "") or "").strip().lower()
    return InboundMessage(
        message_id=str(message.get("id", "") or "").strip(),
        sender_id=sender_id,
        message_type=message_type,
        text=_message_text(message, message_type),
        phone_number_id=str(metadata.get("phone_number_id", "") or "").strip() or None,
        contact_name=_contact_name(value, sender_id),
        timestamp=str(message.get("timestamp", "") or "").strip() or None,
        raw=message,
    )


def _message_text(message: dict[str, Any], message_type: str) -> str:
    if message_type == "text":
        return str(_as_dict(message.get("text")).get("body", "") or "").strip()
    if message_type == "button":
        return str(_as_dict(message.get("button")).get("text", "") or "").strip()
    if message_type == "interactive":
        interactive = _as_dict(message.get("interactive"))
        reply = _as_dict(interactive.get("button_reply") or interactive.get("list_reply"))
        return str(reply.get("title", "") or reply.get("id", "") or "").strip()
    return ""


def _contact_name(value: dict[str, Any], sender_id: str) -> str | None:
    contacts = value.get("contacts")
    if not isinstance(contacts, list):
        return None
    for contact in contacts:
        if not isinstance(contact, dict):
            continue
        if str(contact.get("wa_id", "") or "") not in ("", sender_id):
            continue
        name = str(_as_dict(contact.get("profile")).get("name", "") or "").strip()
        if name:
            return name
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    # Cloud API sends explicit nulls for absent sub-objects.
    return value if isinstance(value, dict) else {}
