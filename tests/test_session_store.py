from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from core.enums import IntakeStep
from core.errors import SessionConflictError
from intake.session_store import MemorySessionStore


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class MemorySessionStoreTest(unittest.TestCase):
    def test_get_or_create_then_save(self) -> None:
        store = MemorySessionStore(session_ttl_minutes=30, clock=_Clock())
        self.assertIsNone(store.get("521"))
        session = store.get_or_create("521")
        self.assertEqual(session.step, IntakeStep.ASK_PRODUCT_INTEREST)
        self.assertEqual(session.version, 0)

        session.step = IntakeStep.ASK_NAME
        session.answers["product_interest"] = "Equipos"
        store.save(session)
        self.assertEqual(session.version, 1)

        loaded = store.get("521")
        self.assertEqual(loaded.step, IntakeStep.ASK_NAME)
        self.assertEqual(loaded.answers, {"product_interest": "Equipos"})
        loaded.answers["name"] = "Ana"
        self.assertNotIn("name", store.get("521").answers)

    def test_stale_write_is_rejected(self) -> None:
        store = MemorySessionStore(clock=_Clock())
        first = store.get_or_create("521")
        second = store.get_or_create("521")
        store.save(first)
        with self.assertRaises(SessionConflictError):
            store.save(second)

    def test_session_expires_after_ttl(self) -> None:
        clock = _Clock()
        store = MemorySessionStore(session_ttl_minutes=30, clock=clock)
        session = store.get_or_create("521")
        session.step = IntakeStep.ASK_EMAIL
        store.save(session)

        clock.now += timedelta(minutes=29)
        self.assertIsNotNone(store.get("521"))
        clock.now += timedelta(minutes=2)
        self.assertIsNone(store.get("521"))
        self.assertEqual(len(store), 0)

        fresh = store.get_or_create("521")
        self.assertEqual(fresh.step, IntakeStep.ASK_PRODUCT_INTEREST)
        store.save(fresh)

    def test_reset_replaces_session(self) -> None:
        store = MemorySessionStore(initial_step=IntakeStep.ASK_BRANCH, clock=_Clock())
        session = store.get_or_create("521")
        session.step = IntakeStep.ASK_PHONE
        session.answers["name"] = "Ana"
        store.save(session)

        reset = store.reset("521")
        self.assertEqual(reset.step, IntakeStep.ASK_BRANCH)
        self.assertEqual(reset.version, 2)
        self.assertEqual(store.get("521").answers, {})

        store.delete("521")
        self.assertIsNone(store.get("521"))
        self.assertEqual(store.stored_version("521"), 0)


if __name__ == "__main__":
    unittest.main()
