from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from core.enums import IntakeStep, LeadField, OutcomeStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def _serialize(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if is_dataclass(value):
        return {k: _serialize(v) for k, v in asdict(value).items()}
    if isinstance(value, tuple):
        return [_serialize(v) for v in value]
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


@dataclass(slots=True)
class InboundMessage:
    message_id: str
    sender_id: str
    message_type: str
    text: str
    phone_number_id: Optional[str] = None
    contact_name: Optional[str] = None
    timestamp: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_text(self) -> bool:
        return self.message_type in {"text", "button", "interactive"} and bool(self.text)


@dataclass(slots=True)
class LeadRecord:
    sender_id: str
    contact_phone: str
    answers: dict[str, str]
    completed_at: datetime

    def to_fields(self, column_map: dict[str, str] | None = None) -> dict[str, Any]:
        columns = dict(LeadField.DEFAULT_COLUMN_MAP)
        columns.update(column_map or {})
        fields: dict[str, Any] = {
            columns.get(LeadField.SENDER_ID, LeadField.SENDER_ID): self.sender_id,
            columns.get(LeadField.PHONE, LeadField.PHONE): self.contact_phone,
        }
        for slot, value in self.answers.items():
            fields[columns.get(slot, slot)] = value
        completed_column = columns.get(LeadField.COMPLETED_AT, LeadField.COMPLETED_AT)
        fields[completed_column] = int(self.completed_at.timestamp() * 1000)
        return fields

    def to_dict(self) -> dict[str, Any]:
        return _serialize(self)


@dataclass(slots=True)
class StepOutcome:
    step: IntakeStep
    reply: str
    advanced: bool = False
    completed: bool = False
    reset: bool = False
    lead: Optional[LeadRecord] = None


@dataclass(slots=True)
class ProcessingOutcome:
    status: OutcomeStatus
    message_id: Optional[str] = None
    sender_id: Optional[str] = None
    detail: Optional[str] = None
    record_id: Optional[str] = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return _serialize(self)
