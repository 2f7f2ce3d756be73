from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from intake.dedupe import DedupeFilter


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class DedupeFilterTest(unittest.TestCase):
    def test_same_id_is_processed_once_inside_window(self) -> None:
        clock = _Clock()
        dedupe = DedupeFilter(window_minutes=5, clock=clock)
        self.assertTrue(dedupe.mark_event_processed("wamid.1"))
        clock.now += timedelta(minutes=4)
        self.assertFalse(dedupe.mark_event_processed("wamid.1"))
        self.assertTrue(dedupe.seen("wamid.1"))
        self.assertTrue(dedupe.mark_event_processed("wamid.2"))

    def test_entries_expire_after_window(self) -> None:
        clock = _Clock()
        dedupe = DedupeFilter(window_minutes=5, clock=clock)
        dedupe.remember("wamid.1")
        clock.now += timedelta(minutes=5)
        self.assertFalse(dedupe.seen("wamid.1"))
        self.assertEqual(len(dedupe), 0)
        self.assertTrue(dedupe.mark_event_processed("wamid.1"))

    def test_empty_ids_are_never_marked(self) -> None:
        dedupe = DedupeFilter()
        self.assertFalse(dedupe.mark_event_processed(""))
        self.assertFalse(dedupe.seen(""))
        dedupe.remember("  ")
        self.assertEqual(len(dedupe), 0)


if __name__ == "__main__":
    unittest.main()
