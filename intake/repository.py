from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterator

from core.enums import IntakeStep
from core.errors import SessionConflictError
from intake.models import IntakeSession
from intake.session_store import SessionStoreBase


class IntakeRepository(SessionStoreBase):
    """SQLite-backed sessions and processed message ids.

    Session writes are version-checked upserts, so several worker processes
    sharing one database file cannot silently overwrite each other.
    """

    def __init__(
        self,
        sqlite_path: str,
        initial_step: IntakeStep = IntakeStep.ASK_PRODUCT_INTEREST,
        session_ttl_minutes: float = 30,
        event_ttl_minutes: float = 5,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(initial_step=initial_step, session_ttl_minutes=session_ttl_minutes, clock=clock)
        self.sqlite_path = Path(sqlite_path)
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self.event_ttl = timedelta(minutes=max(0.0, float(event_ttl_minutes)))
        self._init_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.sqlite_path, timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS intake_sessions (
                    sender_id TEXT PRIMARY KEY,
                    step TEXT NOT NULL,
                    answers_json TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    expires_at TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_intake_sessions_expires
                    ON intake_sessions(expires_at);

                CREATE TABLE IF NOT EXISTS processed_events (
                    event_id TEXT PRIMARY KEY,
                    received_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_processed_events_expires
                    ON processed_events(expires_at);
                """
            )
            conn.commit()

    def mark_event_processed(self, event_id: str) -> bool:
        key = (event_id or "").strip()
        if not key:
            return False

        now = self.now()
        with self._connect() as conn:
            conn.execute("DELETE FROM processed_events WHERE expires_at <= ?", (now.isoformat(),))
            cur = conn.execute(
                "INSERT OR IGNORE INTO processed_events(event_id, received_at, expires_at) VALUES(?, ?, ?)",
                (key, now.isoformat(), (now + self.event_ttl).isoformat()),
            )
            conn.commit()
            return cur.rowcount > 0

    def get(self, sender_id: str) -> IntakeSession | None:
        now = self.now().isoformat()
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT sender_id, step, answers_json, version, expires_at, created_at, updated_at
                FROM intake_sessions
                WHERE sender_id = ? AND expires_at > ?
                """,
                (sender_id, now),
            ).fetchone()
        if row is None:
            return None
        return _session_from_row(row)

    def stored_version(self, sender_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT version FROM intake_sessions WHERE sender_id = ?", (sender_id,)).fetchone()
        return int(row["version"]) if row is not None else 0

    def save(self, session: IntakeSession) -> None:
        if session.last_touched_at is None:
            session.last_touched_at = self.now()
        created_at = session.created_at or session.last_touched_at
        expected = session.version
        with self._connect() as conn:
            if expected == 0:
                cur = conn.execute(
                    """
                    INSERT INTO intake_sessions(
                        sender_id, step, answers_json, version, expires_at, created_at, updated_at
                    ) VALUES(?, ?, ?, 1, ?, ?, ?)
                    ON CONFLICT(sender_id) DO NOTHING
                    """,
                    (
                        session.sender_id,
                        session.step.value,
                        json.dumps(session.answers, ensure_ascii=False),
                        self.expires_at(session).isoformat(),
                        created_at.isoformat(),
                        session.last_touched_at.isoformat(),
                    ),
                )
            else:
                cur = conn.execute(
                    """
                    UPDATE intake_sessions
                    SET step = ?, answers_json = ?, version = version + 1,
                        expires_at = ?, created_at = ?, updated_at = ?
                    WHERE sender_id = ? AND version = ?
                    """,
                    (
                        session.step.value,
                        json.dumps(session.answers, ensure_ascii=False),
                        self.expires_at(session).isoformat(),
                        created_at.isoformat(),
                        session.last_touched_at.isoformat(),
                        session.sender_id,
                        expected,
                    ),
                )
            conn.commit()
            if cur.rowcount == 0:
                raise SessionConflictError(
                    f"session changed concurrently sender_id={session.sender_id} expected_version={expected}"
                )
        session.version = expected + 1

    def delete(self, sender_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM intake_sessions WHERE sender_id = ?", (sender_id,))
            conn.commit()

    def purge_expired(self) -> int:
        now = self.now().isoformat()
        with self._connect() as conn:
            cur_sessions = conn.execute("DELETE FROM intake_sessions WHERE expires_at <= ?", (now,))
            cur_events = conn.execute("DELETE FROM processed_events WHERE expires_at <= ?", (now,))
            conn.commit()
            return int(cur_sessions.rowcount) + int(cur_events.rowcount)


def _session_from_row(row: sqlite3.Row) -> IntakeSession:
    raw_answers = _load_json(row["answers_json"])
    answers = {str(k): str(v) for k, v in raw_answers.items()} if isinstance(raw_answers, dict) else {}
    return IntakeSession(
        sender_id=row["sender_id"],
        step=IntakeStep(row["step"]),
        answers=answers,
        created_at=datetime.fromisoformat(row["created_at"]),
        last_touched_at=datetime.fromisoformat(row["updated_at"]),
        version=int(row["version"]),
    )


def _load_json(text: str | None) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except Exception:
        return None
