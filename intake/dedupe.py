from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable

from core.models import utc_now


class DedupeFilter:
    """Single-process, best-effort filter of recently seen message ids."""

    def __init__(self, window_minutes: float = 5, clock: Callable[[], datetime] | None = None) -> None:
        self.window = timedelta(minutes=max(0.0, float(window_minutes)))
        self._clock = clock or utc_now
        self._expires_at: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def seen(self, message_id: str) -> bool:
        key = (message_id or "").strip()
        if not key:
            return False
        with self._lock:
            self._purge(self._clock())
            return key in self._expires_at

    def remember(self, message_id: str) -> None:
        key = (message_id or "").strip()
        if not key:
            return
        with self._lock:
            now = self._clock()
            self._purge(now)
            self._expires_at[key] = now + self.window

    def mark_event_processed(self, event_id: str) -> bool:
        """Returns True the first time an id shows up inside the window."""
        key = (event_id or "").strip()
        if not key:
            return False
        with self._lock:
            now = self._clock()
            self._purge(now)
            if key in self._expires_at:
                return False
            self._expires_at[key] = now + self.window
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._expires_at)

    def _purge(self, now: datetime) -> None:
        stale = [key for key, expires_at in self._expires_at.items() if expires_at <= now]
        for key in stale:
            del self._expires_at[key]
