from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any, Callable

import boto3
from botocore.exceptions import ClientError

from core.enums import IntakeStep
from core.errors import SessionConflictError
from intake.models import IntakeSession
from intake.session_store import SessionStoreBase


class DynamoIntakeRepository(SessionStoreBase):
    """Sessions and message dedupe in DynamoDB, shared across Lambda instances.

    Both tables carry an `expires_at_epoch` TTL attribute. Session writes are
    conditioned on the version that was read, which makes each message a
    linearizable read-modify-write per sender.
    """

    def __init__(
        self,
        *,
        region_name: str | None = None,
        table_prefix: str = "wa-intake",
        sessions_table_name: str | None = None,
        event_table_name: str | None = None,
        initial_step: IntakeStep = IntakeStep.ASK_PRODUCT_INTEREST,
        session_ttl_minutes: float = 30,
        event_ttl_minutes: float = 5,
        dynamodb_resource: Any | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(initial_step=initial_step, session_ttl_minutes=session_ttl_minutes, clock=clock)
        normalized_prefix = (table_prefix or "wa-intake").strip()
        self.event_ttl = timedelta(minutes=max(0.0, float(event_ttl_minutes)))
        self._ddb = dynamodb_resource or boto3.resource("dynamodb", region_name=region_name)
        self._sessions_table = self._ddb.Table(sessions_table_name or f"{normalized_prefix}-sessions")
        self._event_table = self._ddb.Table(event_table_name or f"{normalized_prefix}-event-dedupe")

    def mark_event_processed(self, event_id: str) -> bool:
        key = (event_id or "").strip()
        if not key:
            return False
        now = self.now()
        now_epoch = int(now.timestamp())
        expires = int((now + self.event_ttl).timestamp())
        try:
            # DynamoDB TTL deletes lazily, so an expired marker must not block a redelivery.
            self._event_table.put_item(
                Item={
                    "event_id": key,
                    "received_at": now.isoformat(),
                    "expires_at_epoch": expires,
                },
                ConditionExpression="attribute_not_exists(event_id) OR expires_at_epoch <= :now",
                ExpressionAttributeValues={":now": now_epoch},
            )
            return True
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return False
            raise

    def get(self, sender_id: str) -> IntakeSession | None:
        item = self._get_item(sender_id)
        if item is None:
            return None
        session = _session_from_item(item)
        if self.is_expired(session):
            return None
        return session

    def stored_version(self, sender_id: str) -> int:
        item = self._get_item(sender_id)
        if item is None:
            return 0
        return int(item.get("version", 0))

    def save(self, session: IntakeSession) -> None:
        if session.last_touched_at is None:
            session.last_touched_at = self.now()
        created_at = session.created_at or session.last_touched_at
        expected = session.version
        expires_at = self.expires_at(session)
        item = {
            "sender_id": session.sender_id,
            "step": session.step.value,
            "answers_json": json.dumps(session.answers, ensure_ascii=False),
            "version": expected + 1,
            "expires_at": expires_at.isoformat(),
            "expires_at_epoch": int(expires_at.timestamp()),
            "created_at": created_at.isoformat(),
            "updated_at": session.last_touched_at.isoformat(),
        }
        if expected == 0:
            condition = "attribute_not_exists(sender_id)"
            values: dict[str, Any] = {}
        else:
            condition = "version = :expected"
            values = {":expected": expected}
        kwargs: dict[str, Any] = {"Item": item, "ConditionExpression": condition}
        if values:
            kwargs["ExpressionAttributeValues"] = values
        try:
            self._sessions_table.put_item(**kwargs)
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise SessionConflictError(
                    f"session changed concurrently sender_id={session.sender_id} expected_version={expected}"
                ) from exc
            raise
        session.version = expected + 1

    def delete(self, sender_id: str) -> None:
        self._sessions_table.delete_item(Key={"sender_id": sender_id})

    def _get_item(self, sender_id: str) -> dict[str, Any] | None:
        response = self._sessions_table.get_item(Key={"sender_id": sender_id}, ConsistentRead=True)
        item = response.get("Item")
        return item if isinstance(item, dict) else None


def _session_from_item(item: dict[str, Any]) -> IntakeSession:
    raw_answers = _load_json(item.get("answers_json"))
    answers = {str(k): str(v) for k, v in raw_answers.items()} if isinstance(raw_answers, dict) else {}
    created_at = _parse_datetime(item.get("created_at"))
    return IntakeSession(
        sender_id=str(item["sender_id"]),
        step=IntakeStep(str(item["step"])),
        answers=answers,
        created_at=created_at,
        last_touched_at=_parse_datetime(item.get("updated_at")) or created_at,
        version=int(item.get("version", 0)),
    )


def _is_conditional_failure(exc: ClientError) -> bool:
    code = str(exc.response.get("Error", {}).get("Code", ""))
    return code == "ConditionalCheckFailedException"


def _parse_datetime(value: Any) -> datetime | None:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _load_json(text: Any) -> Any:
    if not text:
        return None
    try:
        return json.loads(str(text))
    except Exception:
        return None
