from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from bitable.client import BitableClient, create_bitable_client
from core.enums import OutcomeStatus
from core.errors import MalformedEnvelope, SessionConflictError, UpstreamError
from core.models import InboundMessage, LeadRecord, ProcessingOutcome
from flow_engine.client import FlowEngineClient, create_flow_engine_client
from intake.flow import build_flow
from intake import parsers
from intake.intake_service import IntakeService
from intake.repository_factory import create_intake_stores
from intake.repository_interface import EventDedupeProtocol, SessionStoreProtocol
from intake.state_machine import IntakeStateMachine
from whatsapp import message_templates
from whatsapp.envelope import extract_inbound_message
from whatsapp.message_client import WhatsAppMessageClient
from whatsapp.verification import read_verification_params, verify_subscription

logger = logging.getLogger(__name__)


class WhatsAppWebhookHandler:
    def __init__(
        self,
        config: dict[str, Any],
        message_client: WhatsAppMessageClient | None = None,
        bitable_client: BitableClient | None = None,
        flow_engine_client: FlowEngineClient | None = None,
        session_store: SessionStoreProtocol | None = None,
        dedupe: EventDedupeProtocol | None = None,
    ) -> None:
        self.config = config
        self.wa_conf = config.get("whatsapp", {})
        self.intake_conf = config.get("intake", {})
        self.bitable_conf = config.get("bitable", {})
        self.flow_conf = config.get("flow_engine", {})
        self.verify_token = str(self.wa_conf.get("verify_token", "") or "").strip()

        flow = build_flow(self.intake_conf)
        self.state_machine = IntakeStateMachine(
            flow=flow,
            reset_keywords=self.intake_conf.get("reset_keywords") or parsers.DEFAULT_RESET_KEYWORDS,
            min_text_length=int(self.intake_conf.get("min_text_length", 2)),
            min_phone_digits=int(self.intake_conf.get("min_phone_digits", 8)),
        )
        if session_store is None or dedupe is None:
            default_store, default_dedupe = create_intake_stores(config, initial_step=flow.first_step)
            if session_store is None:
                session_store = default_store
            if dedupe is None:
                dedupe = default_dedupe
        self.session_store = session_store
        self.dedupe = dedupe
        self.intake_service = IntakeService(
            store=self.session_store,
            state_machine=self.state_machine,
            max_conflict_retries=int(self.intake_conf.get("max_conflict_retries", 3)),
        )

        self.message_client = message_client or WhatsAppMessageClient(
            access_token=str(self.wa_conf.get("access_token", "") or ""),
            phone_number_id=str(self.wa_conf.get("phone_number_id", "") or ""),
            api_base_url=str(self.wa_conf.get("api_base_url", "https://graph.facebook.com")),
            api_version=str(self.wa_conf.get("api_version", "v22.0")),
            timeout_sec=float(self.wa_conf.get("timeout_sec", 10)),
        )
        self.bitable_client = bitable_client if bitable_client is not None else create_bitable_client(config)
        self.flow_engine_client = (
            flow_engine_client if flow_engine_client is not None else create_flow_engine_client(config)
        )
        self.fallback_reply = str(
            self.flow_conf.get("fallback_reply") or message_templates.DEFAULT_FALLBACK_REPLY
        )
        field_map = self.bitable_conf.get("field_map", {})
        self.field_map: dict[str, str] = field_map if isinstance(field_map, dict) else {}

    def handle_verification(self, params: Mapping[str, str]) -> tuple[int, str]:
        mode, token, challenge = read_verification_params(params)
        echoed = verify_subscription(mode, token, challenge, self.verify_token)
        if echoed is None:
            logger.warning("webhook-verification-rejected mode=%s", mode)
            return 403, "Forbidden"
        return 200, echoed

    def handle_event(self, body: bytes | str | dict[str, Any]) -> tuple[int, dict[str, Any]]:
        """Always acknowledges with 200; every failure ends up in the outcome and the log."""
        outcome = self.process(body)
        _log_outcome(outcome)
        return 200, {
            "ok": True,
            "status": outcome.status.value,
            "handled": 1 if outcome.status in {OutcomeStatus.REPLIED, OutcomeStatus.COMPLETED} else 0,
            "skipped": 1 if outcome.status in {OutcomeStatus.IGNORED, OutcomeStatus.DUPLICATE} else 0,
            "errors": len(outcome.errors),
        }

    def process(self, body: bytes | str | dict[str, Any]) -> ProcessingOutcome:
        try:
            payload = _decode_payload(body)
            message = extract_inbound_message(payload)
        except MalformedEnvelope as exc:
            return ProcessingOutcome(status=OutcomeStatus.MALFORMED, detail=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("webhook-envelope-unreadable")
            return ProcessingOutcome(
                status=OutcomeStatus.MALFORMED,
                detail="unreadable envelope",
                errors=[f"unexpected: {exc!r}"],
            )
        if message is None:
            return ProcessingOutcome(status=OutcomeStatus.IGNORED, detail="no message in payload")

        outcome = ProcessingOutcome(
            status=OutcomeStatus.REPLIED,
            message_id=message.message_id or None,
            sender_id=message.sender_id,
        )
        if message.message_id and not self.dedupe.mark_event_processed(message.message_id):
            outcome.status = OutcomeStatus.DUPLICATE
            return outcome

        try:
            if self.flow_engine_client is not None:
                self._reply_from_flow_engine(message, payload, outcome)
            else:
                self._reply_from_intake(message, outcome)
        except Exception as exc:  # noqa: BLE001
            outcome.status = OutcomeStatus.FAILED
            outcome.errors.append(f"unexpected: {exc!r}")
            logger.exception("webhook-processing-failed message_id=%s", message.message_id)
        return outcome

    def _reply_from_intake(self, message: InboundMessage, outcome: ProcessingOutcome) -> None:
        if not message.is_text:
            outcome.detail = f"unsupported message type: {message.message_type}"
            self._send(message, message_templates.build_text_only_message(), outcome)
            return

        try:
            step = self.intake_service.handle_text(message.sender_id, message.text)
        except SessionConflictError as exc:
            outcome.status = OutcomeStatus.FAILED
            outcome.errors.append(f"session: {exc}")
            return

        outcome.detail = step.step.value
        # The session is already COMPLETED; the lead must be stored even if the reply fails.
        if step.completed and step.lead is not None:
            outcome.status = OutcomeStatus.COMPLETED
            self._persist_lead(step.lead, outcome)
        self._send(message, step.reply, outcome)

    def _reply_from_flow_engine(
        self,
        message: InboundMessage,
        payload: dict[str, Any],
        outcome: ProcessingOutcome,
    ) -> None:
        assert self.flow_engine_client is not None
        reply: str | None = None
        try:
            reply = self.flow_engine_client.request_reply(payload)
        except UpstreamError as exc:
            outcome.errors.append(f"flow_engine: {exc}")
        outcome.detail = "flow_engine"
        self._send(message, reply or self.fallback_reply, outcome)

    def _send(self, message: InboundMessage, text: str, outcome: ProcessingOutcome) -> None:
        try:
            self.message_client.send_text(message.sender_id, text, phone_number_id=message.phone_number_id)
        except UpstreamError as exc:
            outcome.errors.append(f"send: {exc}")
        except Exception as exc:  # noqa: BLE001
            outcome.errors.append(f"send: unexpected {exc!r}")
            logger.exception("reply-send-failed sender_id=%s", message.sender_id)

    def _persist_lead(self, lead: LeadRecord, outcome: ProcessingOutcome) -> None:
        if self.bitable_client is None:
            logger.warning("lead-not-persisted sender_id=%s reason=bitable-disabled lead=%s", lead.sender_id, lead.to_dict())
            return
        try:
            outcome.record_id = self.bitable_client.create_record(lead.to_fields(self.field_map))
        except UpstreamError as exc:
            outcome.errors.append(f"persist: {exc}")
        except Exception as exc:  # noqa: BLE001
            outcome.errors.append(f"persist: unexpected {exc!r}")
            logger.exception("lead-persist-failed sender_id=%s lead=%s", lead.sender_id, lead.to_dict())


def _decode_payload(body: bytes | str | dict[str, Any]) -> dict[str, Any]:
    if isinstance(body, dict):
        return body
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(body or "")
    except ValueError as exc:
        raise MalformedEnvelope(f"invalid json payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedEnvelope("payload must be a JSON object")
    return payload


def _log_outcome(outcome: ProcessingOutcome) -> None:
    level = logging.INFO if outcome.ok else logging.ERROR
    if outcome.status == OutcomeStatus.MALFORMED:
        level = logging.WARNING
    logger.log(
        level,
        "webhook-outcome status=%s message_id=%s sender_id=%s detail=%s record_id=%s errors=%s",
        outcome.status.value,
        outcome.message_id,
        outcome.sender_id,
        outcome.detail,
        outcome.record_id,
        outcome.errors,
    )
