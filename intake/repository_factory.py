from __future__ import annotations

from typing import Any

from core.enums import IntakeStep
from intake.dedupe import DedupeFilter
from intake.dynamo_repository import DynamoIntakeRepository
from intake.repository import IntakeRepository
from intake.repository_interface import EventDedupeProtocol, SessionStoreProtocol
from intake.session_store import MemorySessionStore


def create_intake_stores(
    config: dict[str, Any],
    initial_step: IntakeStep = IntakeStep.ASK_PRODUCT_INTEREST,
) -> tuple[SessionStoreProtocol, EventDedupeProtocol]:
    intake_conf = config.get("intake", {})
    backend = str(intake_conf.get("backend", "memory") or "memory").strip().lower()
    session_ttl = float(intake_conf.get("session_ttl_minutes", 30))
    dedupe_window = float(intake_conf.get("dedupe_window_minutes", 5))

    if backend == "dynamodb":
        ddb_conf = intake_conf.get("dynamodb", {}) if isinstance(intake_conf, dict) else {}
        tables = ddb_conf.get("tables", {}) if isinstance(ddb_conf, dict) else {}
        repository = DynamoIntakeRepository(
            region_name=_as_optional_str(ddb_conf.get("region")),
            table_prefix=str(ddb_conf.get("table_prefix", "wa-intake")),
            sessions_table_name=_as_optional_str(tables.get("sessions")),
            event_table_name=_as_optional_str(tables.get("event_dedupe")),
            initial_step=initial_step,
            session_ttl_minutes=session_ttl,
            event_ttl_minutes=dedupe_window,
        )
        return repository, repository

    if backend == "sqlite":
        sqlite_path = str(intake_conf.get("sqlite_path", "data/intake/sessions.db"))
        sqlite_repository = IntakeRepository(
            sqlite_path=sqlite_path,
            initial_step=initial_step,
            session_ttl_minutes=session_ttl,
            event_ttl_minutes=dedupe_window,
        )
        return sqlite_repository, sqlite_repository

    if backend != "memory":
        raise ValueError(f"unknown intake backend: {backend}")
    return (
        MemorySessionStore(initial_step=initial_step, session_ttl_minutes=session_ttl),
        DedupeFilter(window_minutes=dedupe_window),
    )


def _as_optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None
