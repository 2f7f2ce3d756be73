from __future__ import annotations

import logging

from core.errors import SessionConflictError
from core.models import StepOutcome
from intake.repository_interface import SessionStoreProtocol
from intake.state_machine import IntakeStateMachine

logger = logging.getLogger(__name__)


class IntakeService:
    def __init__(
        self,
        store: SessionStoreProtocol,
        state_machine: IntakeStateMachine | None = None,
        max_conflict_retries: int = 3,
    ) -> None:
        self.store = store
        self.state_machine = state_machine or IntakeStateMachine()
        self.max_conflict_retries = max(1, int(max_conflict_retries))

    def handle_text(self, sender_id: str, text: str) -> StepOutcome:
        """Runs one step for the sender and persists the session.

        A concurrent write for the same sender is retried against the fresh
        session; the last conflict propagates once retries are exhausted.
        """
        attempt = 1
        while True:
            try:
                return self._handle_once(sender_id, text)
            except SessionConflictError as exc:
                if attempt >= self.max_conflict_retries:
                    raise
                logger.warning("intake-session-conflict sender_id=%s attempt=%d error=%s", sender_id, attempt, exc)
                attempt += 1

    def _handle_once(self, sender_id: str, text: str) -> StepOutcome:
        machine = self.state_machine
        if machine.is_reset_command(text):
            session = self.store.reset(sender_id)
            logger.info("intake-reset sender_id=%s", sender_id)
            return machine.restart(session)

        session = self.store.get_or_create(sender_id)
        previous_step = session.step
        now = self.store.now()
        outcome = machine.advance(session, text, now=now)
        session.last_touched_at = now
        self.store.save(session)
        if outcome.advanced:
            logger.info("intake-advanced sender_id=%s from=%s to=%s", sender_id, previous_step.value, session.step.value)
        else:
            logger.info("intake-reprompt sender_id=%s step=%s", sender_id, session.step.value)
        return outcome
