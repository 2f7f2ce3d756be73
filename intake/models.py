from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from core.enums import IntakeStep


@dataclass(slots=True)
class IntakeSession:
    sender_id: str
    step: IntakeStep
    answers: dict[str, str] = field(default_factory=dict)
    created_at: datetime | None = None
    last_touched_at: datetime | None = None
    version: int = 0

    @property
    def completed(self) -> bool:
        return self.step == IntakeStep.COMPLETED
