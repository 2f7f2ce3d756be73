from __future__ import annotations

import unittest
from datetime import datetime, timezone
from unittest import mock

from core.enums import IntakeStep
from core.errors import SessionConflictError
from intake.intake_service import IntakeService
from intake.session_store import MemorySessionStore

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class IntakeServiceTest(unittest.TestCase):
    def test_answers_are_persisted_between_messages(self) -> None:
        store = MemorySessionStore(clock=lambda: NOW)
        service = IntakeService(store)
        outcome = service.handle_text("521", "2")
        self.assertTrue(outcome.advanced)
        self.assertEqual(store.get("521").step, IntakeStep.ASK_USER_INTENT)

        outcome = service.handle_text("521", "???")
        self.assertFalse(outcome.advanced)
        self.assertEqual(store.get("521").step, IntakeStep.ASK_USER_INTENT)

    def test_full_conversation_then_completed(self) -> None:
        store = MemorySessionStore(clock=lambda: NOW)
        service = IntakeService(store)
        outcome = None
        for text in ["1", "1", "Ana", "Acme", "CDMX", "5511112222", "ana@acme.com"]:
            outcome = service.handle_text("5211234567", text)
        self.assertTrue(outcome.completed)
        self.assertEqual(outcome.lead.completed_at, NOW)
        self.assertEqual(store.get("5211234567").step, IntakeStep.COMPLETED)

        again = service.handle_text("5211234567", "Hola de nuevo")
        self.assertFalse(again.completed)
        self.assertIsNone(again.lead)
        self.assertEqual(store.get("5211234567").step, IntakeStep.COMPLETED)

    def test_reset_keyword_restarts_session(self) -> None:
        store = MemorySessionStore(clock=lambda: NOW)
        service = IntakeService(store)
        service.handle_text("521", "1")
        service.handle_text("521", "1")
        outcome = service.handle_text("521", "REINICIAR")
        self.assertTrue(outcome.reset)
        stored = store.get("521")
        self.assertEqual(stored.step, IntakeStep.ASK_PRODUCT_INTEREST)
        self.assertEqual(stored.answers, {})

    def test_conflict_is_retried(self) -> None:
        store = MemorySessionStore(clock=lambda: NOW)
        original_save = store.save
        calls = {"count": 0}

        def flaky_save(session):
            calls["count"] += 1
            if calls["count"] == 1:
                raise SessionConflictError("concurrent write")
            original_save(session)

        with mock.patch.object(store, "save", side_effect=flaky_save):
            outcome = IntakeService(store).handle_text("521", "1")
        self.assertTrue(outcome.advanced)
        self.assertEqual(calls["count"], 2)

    def test_conflict_propagates_after_retries(self) -> None:
        store = MemorySessionStore(clock=lambda: NOW)
        with mock.patch.object(store, "save", side_effect=SessionConflictError("busy")) as save:
            with self.assertRaises(SessionConflictError):
                IntakeService(store, max_conflict_retries=3).handle_text("521", "1")
        self.assertEqual(save.call_count, 3)


if __name__ == "__main__":
    unittest.main()
