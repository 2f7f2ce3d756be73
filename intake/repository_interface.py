from __future__ import annotations

from datetime import datetime
from typing import Protocol

from intake.models import IntakeSession


class SessionStoreProtocol(Protocol):
    def now(self) -> datetime: ...

    def get(self, sender_id: str) -> IntakeSession | None: ...

    def get_or_create(self, sender_id: str) -> IntakeSession: ...

    def reset(self, sender_id: str) -> IntakeSession: ...

    def save(self, session: IntakeSession) -> None: ...

    def delete(self, sender_id: str) -> None: ...


class EventDedupeProtocol(Protocol):
    def mark_event_processed(self, event_id: str) -> bool: ...
