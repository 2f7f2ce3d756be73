from __future__ import annotations

import unittest

from core.errors import MalformedEnvelope
from tests.fakes import message_event, status_event, text_event
from whatsapp.envelope import extract_inbound_message


class EnvelopeTest(unittest.TestCase):
    def test_text_message(self) -> None:
        message = extract_inbound_message(text_event("  Hola  "))
        self.assertEqual(message.message_id, "wamid.1")
        self.assertEqual(message.sender_id, "5211234567")
        self.assertEqual(message.text, "Hola")
        self.assertEqual(message.phone_number_id, "1098765")
        self.assertEqual(message.contact_name, "Ana")
        self.assertEqual(message.timestamp, "1700000000")
        self.assertTrue(message.is_text)

    def test_interactive_and_button_replies_carry_text(self) -> None:
        interactive = extract_inbound_message(
            message_event(
                {
                    "from": "521",
                    "id": "wamid.2",
                    "type": "interactive",
                    "interactive": {"type": "button_reply", "button_reply": {"id": "opt-1", "title": "Equipos"}},
                }
            )
        )
        self.assertEqual(interactive.text, "Equipos")
        button = extract_inbound_message(
            message_event({"from": "521", "id": "wamid.3", "type": "button", "button": {"text": "Renta"}})
        )
        self.assertEqual(button.text, "Renta")
        self.assertTrue(button.is_text)

    def test_media_message_is_not_text(self) -> None:
        message = extract_inbound_message(
            message_event({"from": "521", "id": "wamid.4", "type": "image", "image": {"id": "media-1"}})
        )
        self.assertEqual(message.message_type, "image")
        self.assertFalse(message.is_text)

    def test_null_sub_objects_are_read_as_empty(self) -> None:
        cases = {
            "text": {"type": "text", "text": None},
            "button": {"type": "button", "button": None},
            "interactive": {"type": "interactive", "interactive": None},
            "reply": {"type": "interactive", "interactive": {"type": "list_reply", "list_reply": None}},
        }
        for name, fields in cases.items():
            with self.subTest(name=name):
                message = extract_inbound_message(message_event({"from": "521", "id": f"wamid.{name}", **fields}))
                self.assertEqual(message.text, "")
                self.assertFalse(message.is_text)

    def test_null_profile_and_metadata(self) -> None:
        payload = text_event("hola")
        value = payload["entry"][0]["changes"][0]["value"]
        value["contacts"][0]["profile"] = None
        value["metadata"] = None
        message = extract_inbound_message(payload)
        self.assertIsNone(message.contact_name)
        self.assertIsNone(message.phone_number_id)
        self.assertEqual(message.text, "hola")

    def test_status_callback_has_no_message(self) -> None:
        self.assertIsNone(extract_inbound_message(status_event()))

    def test_malformed_payloads(self) -> None:
        cases = [
            [],
            {},
            {"entry": []},
            {"entry": [{"changes": []}]},
            {"entry": [{"changes": [{"value": "x"}]}]},
            {"entry": [{"changes": [{"value": {"messages": "x"}}]}]},
            message_event({"id": "wamid.5", "type": "text", "text": {"body": "hola"}}),
        ]
        for payload in cases:
            with self.subTest(payload=payload):
                with self.assertRaises(MalformedEnvelope):
                    extract_inbound_message(payload)


if __name__ == "__main__":
    unittest.main()
