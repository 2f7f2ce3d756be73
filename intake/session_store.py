from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable

from core.enums import IntakeStep
from core.errors import SessionConflictError
from core.models import utc_now
from intake.models import IntakeSession


class SessionStoreBase:
    """Shared lifecycle rules; backends provide get/save/delete and the stored version."""

    def __init__(
        self,
        initial_step: IntakeStep = IntakeStep.ASK_PRODUCT_INTEREST,
        session_ttl_minutes: float = 30,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.initial_step = initial_step
        self.session_ttl = timedelta(minutes=max(1.0, float(session_ttl_minutes)))
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    def new_session(self, sender_id: str, version: int = 0) -> IntakeSession:
        now = self.now()
        return IntakeSession(
            sender_id=sender_id,
            step=self.initial_step,
            answers={},
            created_at=now,
            last_touched_at=now,
            version=version,
        )

    def is_expired(self, session: IntakeSession, now: datetime | None = None) -> bool:
        touched = session.last_touched_at or session.created_at
        if touched is None:
            return True
        return touched + self.session_ttl <= (now or self.now())

    def expires_at(self, session: IntakeSession) -> datetime:
        touched = session.last_touched_at or self.now()
        return touched + self.session_ttl

    def get_or_create(self, sender_id: str) -> IntakeSession:
        session = self.get(sender_id)
        if session is not None:
            return session
        return self.new_session(sender_id, version=self.stored_version(sender_id))

    def reset(self, sender_id: str) -> IntakeSession:
        session = self.new_session(sender_id, version=self.stored_version(sender_id))
        self.save(session)
        return session

    def get(self, sender_id: str) -> IntakeSession | None:
        raise NotImplementedError

    def save(self, session: IntakeSession) -> None:
        raise NotImplementedError

    def delete(self, sender_id: str) -> None:
        raise NotImplementedError

    def stored_version(self, sender_id: str) -> int:
        raise NotImplementedError


class MemorySessionStore(SessionStoreBase):
    """Process-local map; entries vanish on restart or when the instance is recycled."""

    def __init__(
        self,
        initial_step: IntakeStep = IntakeStep.ASK_PRODUCT_INTEREST,
        session_ttl_minutes: float = 30,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(initial_step=initial_step, session_ttl_minutes=session_ttl_minutes, clock=clock)
        self._sessions: dict[str, IntakeSession] = {}
        self._lock = threading.Lock()

    def get(self, sender_id: str) -> IntakeSession | None:
        with self._lock:
            self._sweep()
            stored = self._sessions.get(sender_id)
            if stored is None:
                return None
            return _copy(stored)

    def save(self, session: IntakeSession) -> None:
        with self._lock:
            stored = self._sessions.get(session.sender_id)
            current_version = stored.version if stored is not None else 0
            if current_version != session.version:
                raise SessionConflictError(
                    f"session changed concurrently sender_id={session.sender_id} "
                    f"expected_version={session.version} current_version={current_version}"
                )
            session.version += 1
            if session.last_touched_at is None:
                session.last_touched_at = self.now()
            self._sessions[session.sender_id] = _copy(session)

    def delete(self, sender_id: str) -> None:
        with self._lock:
            self._sessions.pop(sender_id, None)

    def stored_version(self, sender_id: str) -> int:
        with self._lock:
            stored = self._sessions.get(sender_id)
            return stored.version if stored is not None else 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _sweep(self) -> None:
        now = self.now()
        stale = [sender_id for sender_id, session in self._sessions.items() if self.is_expired(session, now)]
        for sender_id in stale:
            del self._sessions[sender_id]


def _copy(session: IntakeSession) -> IntakeSession:
    return IntakeSession(
        sender_id=session.sender_id,
        step=session.step,
        answers=dict(session.answers),
        created_at=session.created_at,
        last_touched_at=session.last_touched_at,
        version=session.version,
    )
