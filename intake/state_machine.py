from __future__ import annotations

from datetime import datetime
from typing import Iterable

from core.enums import IntakeStep, StepKind
from core.errors import ValidationFailure
from core.models import LeadRecord, StepOutcome, utc_now
from intake import parsers
from intake.flow import FlowDefinition
from intake.models import IntakeSession
from whatsapp import message_templates


class IntakeStateMachine:
    """Linear questionnaire: one validated answer per inbound message.

    The machine mutates the session it is given; persisting it is the caller's job.
    """

    def __init__(
        self,
        flow: FlowDefinition | None = None,
        reset_keywords: Iterable[str] = parsers.DEFAULT_RESET_KEYWORDS,
        min_text_length: int = 2,
        min_phone_digits: int = 8,
    ) -> None:
        self.flow = flow or FlowDefinition()
        self.reset_keywords = tuple(reset_keywords)
        self.min_text_length = max(1, int(min_text_length))
        self.min_phone_digits = max(1, int(min_phone_digits))

    def is_reset_command(self, text: str | None) -> bool:
        return parsers.is_reset_command(text, self.reset_keywords)

    def restart(self, session: IntakeSession) -> StepOutcome:
        session.step = self.flow.first_step
        session.answers = {}
        first = self.flow.definition(session.step)
        return StepOutcome(step=session.step, reply=first.prompt, reset=True)

    def current_prompt(self, session: IntakeSession) -> str:
        if session.step == IntakeStep.COMPLETED:
            return message_templates.build_already_registered_message(self.reset_keywords)
        return self.flow.definition(session.step).prompt

    def advance(self, session: IntakeSession, text: str | None, now: datetime | None = None) -> StepOutcome:
        if self.is_reset_command(text):
            return self.restart(session)

        if session.step == IntakeStep.COMPLETED:
            return StepOutcome(
                step=session.step,
                reply=message_templates.build_already_registered_message(self.reset_keywords),
            )

        if not self.flow.has_step(session.step):
            # Stored under a flow that no longer has this step.
            return self.restart(session)

        definition = self.flow.definition(session.step)
        try:
            value = parsers.parse_answer(
                definition,
                str(text or ""),
                min_text_length=self.min_text_length,
                min_phone_digits=self.min_phone_digits,
            )
        except ValidationFailure:
            return StepOutcome(step=session.step, reply=definition.prompt)

        session.answers[definition.slot] = value
        session.step = self.flow.next_step(definition.step)
        if session.step != IntakeStep.COMPLETED:
            return StepOutcome(
                step=session.step,
                reply=self.flow.definition(session.step).prompt,
                advanced=True,
            )

        lead = self.build_lead(session, now or utc_now())
        return StepOutcome(
            step=session.step,
            reply=message_templates.build_completed_message(lead.answers, self.flow.slots),
            advanced=True,
            completed=True,
            lead=lead,
        )

    def build_lead(self, session: IntakeSession, completed_at: datetime) -> LeadRecord:
        answers = {slot: session.answers[slot] for slot in self.flow.slots if slot in session.answers}
        phone_slot = self.flow.slot_for_kind(StepKind.PHONE)
        contact_phone = answers.get(phone_slot, "") if phone_slot else ""
        return LeadRecord(
            sender_id=session.sender_id,
            contact_phone=contact_phone or session.sender_id,
            answers=answers,
            completed_at=completed_at,
        )
