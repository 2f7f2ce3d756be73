from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from core.enums import IntakeStep
from intake.dedupe import DedupeFilter
from intake.repository import IntakeRepository
from intake.repository_factory import create_intake_stores
from intake.session_store import MemorySessionStore


class RepositoryFactoryTest(unittest.TestCase):
    def test_memory_backend_by_default(self) -> None:
        store, dedupe = create_intake_stores({}, initial_step=IntakeStep.ASK_BRANCH)
        self.assertIsInstance(store, MemorySessionStore)
        self.assertIsInstance(dedupe, DedupeFilter)
        self.assertEqual(store.initial_step, IntakeStep.ASK_BRANCH)

    def test_sqlite_backend(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = {"intake": {"backend": "sqlite", "sqlite_path": str(Path(tmp) / "s.db")}}
            store, dedupe = create_intake_stores(config)
            self.assertIsInstance(store, IntakeRepository)
            self.assertIs(store, dedupe)

    def test_dynamodb_backend(self) -> None:
        config = {
            "intake": {
                "backend": "dynamodb",
                "session_ttl_minutes": 45,
                "dynamodb": {
                    "region": "us-east-1",
                    "table_prefix": "wa",
                    "tables": {"sessions": "ses", "event_dedupe": "evt"},
                },
            }
        }
        with mock.patch("intake.repository_factory.DynamoIntakeRepository") as constructor:
            store, dedupe = create_intake_stores(config)
        constructor.assert_called_once()
        kwargs = constructor.call_args.kwargs
        self.assertEqual(kwargs["region_name"], "us-east-1")
        self.assertEqual(kwargs["sessions_table_name"], "ses")
        self.assertEqual(kwargs["event_table_name"], "evt")
        self.assertEqual(kwargs["session_ttl_minutes"], 45.0)
        self.assertIs(store, dedupe)

    def test_unknown_backend(self) -> None:
        with self.assertRaises(ValueError):
            create_intake_stores({"intake": {"backend": "redis"}})


if __name__ == "__main__":
    unittest.main()
