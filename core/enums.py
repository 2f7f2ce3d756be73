from __future__ import annotations

from enum import Enum


class IntakeStep(str, Enum):
    ASK_BRANCH = "ASK_BRANCH"
    ASK_PRODUCT_INTEREST = "ASK_PRODUCT_INTEREST"
    ASK_USER_INTENT = "ASK_USER_INTENT"
    ASK_NAME = "ASK_NAME"
    ASK_COMPANY = "ASK_COMPANY"
    ASK_LOCATION = "ASK_LOCATION"
    ASK_PHONE = "ASK_PHONE"
    ASK_EMAIL = "ASK_EMAIL"
    COMPLETED = "COMPLETED"


class StepKind(str, Enum):
    CHOICE = "choice"
    TEXT = "text"
    PHONE = "phone"
    EMAIL = "email"


class OutcomeStatus(str, Enum):
    REPLIED = "REPLIED"
    COMPLETED = "COMPLETED"
    IGNORED = "IGNORED"
    DUPLICATE = "DUPLICATE"
    MALFORMED = "MALFORMED"
    FAILED = "FAILED"


class LeadField:
    SENDER_ID = "sender_id"
    BRANCH = "branch"
    PRODUCT_INTEREST = "product_interest"
    USER_INTENT = "user_intent"
    NAME = "name"
    COMPANY = "company"
    LOCATION = "location"
    PHONE = "phone"
    EMAIL = "email"
    COMPLETED_AT = "completed_at"

    # Column names of the original Bitable table.
    DEFAULT_COLUMN_MAP = {
        SENDER_ID: "wa_id",
        BRANCH: "sucursal",
        PRODUCT_INTEREST: "producto_interes",
        USER_INTENT: "intencion_cliente",
        NAME: "nombre",
        COMPANY: "empresa",
        LOCATION: "ubicacion",
        PHONE: "telefono",
        EMAIL: "email",
        COMPLETED_AT: "created_at",
    }
