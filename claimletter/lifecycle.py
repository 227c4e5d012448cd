"""
Letter lifecycle state machine.

    uploaded -> analyzed -> responded
        \\          \\           \\
         +----------+-----------+--> error

Every operation reads the record with its version, calls at most one external
adapter, then writes content and status together with ``expected_version``.
A write that loses against a concurrent writer re-reads the record: if the
other writer already reached the target state that record is returned,
otherwise ``Conflict`` propagates.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import jsonschema

from claimletter.adapters.llm import Completion, CompletionOptions
from claimletter.delivery import DeliveryFinalizer, DeliveryReceipt
from claimletter.errors import AdapterFailure, ApiError, Conflict, InvalidTransition
from claimletter.models import (
    PAYMENT_PAID,
    PAYMENT_REFUNDED,
    PAYMENT_STATUSES,
    STATUS_ANALYZED,
    STATUS_ERROR,
    STATUS_RESPONDED,
    LetterRecord,
    reached,
)
from claimletter.prompts import (
    ANALYSIS_SCHEMA,
    ANALYSIS_SYSTEM_PROMPT,
    StyleOptions,
    build_analysis_prompt,
    build_appeal_prompt,
    build_appeal_system_prompt,
    resolve_style_options,
)

logger = logging.getLogger(__name__)


class LettersStore(Protocol):
    def create(self, record: LetterRecord) -> LetterRecord: ...

    def get(self, record_id: str) -> LetterRecord: ...

    def update(
        self,
        record_id: str,
        fields: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> LetterRecord: ...


class TextProvider(Protocol):
    def complete(self, prompt: str, options: CompletionOptions | None = None) -> Completion: ...


@dataclass(frozen=True)
class GenerationResult:
    record: LetterRecord
    style: StyleOptions
    model: str


def parse_analysis(text: str) -> dict[str, Any]:
    """Decode and validate the structured analysis returned by the text provider."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise AdapterFailure("llm", f"malformed analysis: {exc.msg}") from exc
    try:
        jsonschema.validate(instance=payload, schema=ANALYSIS_SCHEMA)
    except jsonschema.ValidationError as exc:
        raise AdapterFailure("llm", f"analysis does not match schema: {exc.message}") from exc
    payload["summary"] = payload["summary"].strip()
    if not payload["summary"]:
        raise AdapterFailure("llm", "analysis summary is empty")
    return payload


class LetterLifecycle:
    def __init__(
        self,
        *,
        store: LettersStore,
        text_provider: TextProvider,
        delivery: DeliveryFinalizer | None = None,
        analysis_max_tokens: int = 1500,
        response_max_tokens: int = 2000,
    ) -> None:
        self._store = store
        self._text = text_provider
        self._delivery = delivery
        self._analysis_max_tokens = analysis_max_tokens
        self._response_max_tokens = response_max_tokens

    def create(
        self,
        *,
        letter_text: str,
        user_email: str | None = None,
        price_id: str | None = None,
    ) -> LetterRecord:
        record = LetterRecord.new(letter_text=letter_text, user_email=user_email, price_id=price_id)
        created = self._store.create(record)
        logger.info("letter %s uploaded chars=%d", created.id, len(letter_text))
        return created

    def get(self, record_id: str) -> LetterRecord:
        return self._store.get(record_id)

    def analyze(self, record_id: str, raw_text: str | None = None) -> LetterRecord:
        record = self._store.get(record_id)
        if reached(record, STATUS_ANALYZED):
            logger.info("letter %s already %s; analyze skipped", record.id, record.status)
            return record

        supplied = (raw_text or "").strip()
        letter_text = supplied or record.letter_text.strip()
        if not letter_text:
            raise InvalidTransition(
                f"letter record {record.id} has no letter text to analyze",
                current_status=record.status,
            )

        try:
            completion = self._text.complete(
                build_analysis_prompt(letter_text),
                CompletionOptions(
                    system=ANALYSIS_SYSTEM_PROMPT,
                    json_mode=True,
                    max_tokens=self._analysis_max_tokens,
                    temperature=0.2,
                    task="analysis",
                ),
            )
            analysis = parse_analysis(completion.text)
        except AdapterFailure as exc:
            self._record_failure(record, exc, status=STATUS_ERROR)
            raise

        fields: dict[str, Any] = {
            "analysis": analysis,
            "summary": analysis["summary"],
            "status": STATUS_ANALYZED,
            "last_error": None,
        }
        if supplied and not record.letter_text.strip():
            fields["letter_text"] = supplied
        updated = self._write_transition(record, fields, target=STATUS_ANALYZED)
        logger.info("letter %s analyzed model=%s version=%d", updated.id, completion.model, updated.version)
        return updated

    def generate_response(
        self,
        record_id: str,
        summary: str | None = None,
        *,
        tone: str | None = None,
        approach: str | None = None,
        style: str | None = None,
    ) -> GenerationResult:
        record = self._store.get(record_id)
        effective = record.summary if summary is None else summary
        if not (effective or "").strip():
            raise InvalidTransition(
                f"letter record {record.id} has no summary to respond to",
                current_status=record.status,
            )

        options = resolve_style_options(tone=tone, approach=approach, style=style)
        if options.defaulted:
            logger.info("letter %s style options defaulted: %s", record.id, ", ".join(options.defaulted))

        try:
            completion = self._text.complete(
                build_appeal_prompt(effective or ""),
                CompletionOptions(
                    system=build_appeal_system_prompt(options),
                    max_tokens=self._response_max_tokens,
                    top_p=0.9,
                    task="appeal",
                ),
            )
        except AdapterFailure as exc:
            self._record_failure(record, exc, status=None)
            raise

        updated = self._write_transition(
            record,
            {"ai_response": completion.text, "status": STATUS_RESPONDED, "last_error": None},
            target=STATUS_RESPONDED,
        )
        logger.info(
            "letter %s responded tone=%s approach=%s style=%s version=%d",
            updated.id,
            options.tone,
            options.approach,
            options.style,
            updated.version,
        )
        return GenerationResult(record=updated, style=options, model=completion.model)

    def finalize_delivery(self, record_id: str, destination_address: str) -> DeliveryReceipt:
        if self._delivery is None:
            raise AdapterFailure("email", "delivery is not configured", http_status=503)
        record = self._store.get(record_id)
        return self._delivery.deliver(record, destination_address)

    def record_payment(
        self,
        record_id: str,
        *,
        session_id: str,
        payment_status: str,
        user_email: str | None = None,
    ) -> LetterRecord:
        if payment_status not in PAYMENT_STATUSES:
            raise ApiError(
                code="PAYMENT_STATUS_INVALID",
                message=f"invalid payment status: {payment_status}",
                error_class="validation",
                retryable=False,
                http_status=400,
            )
        record = self._store.get(record_id)
        if self._payment_applied(record, session_id=session_id, payment_status=payment_status):
            return record
        if record.payment_status == PAYMENT_REFUNDED and payment_status == PAYMENT_PAID:
            raise InvalidTransition(f"letter record {record.id} was refunded", current_status=record.status)

        fields: dict[str, Any] = {"payment_session_id": session_id, "payment_status": payment_status}
        if user_email:
            fields["user_email"] = user_email
        try:
            updated = self._store.update(record.id, fields, expected_version=record.version)
        except Conflict:
            latest = self._store.get(record.id)
            if self._payment_applied(latest, session_id=session_id, payment_status=payment_status):
                return latest
            raise
        logger.info("letter %s payment %s session=%s", updated.id, payment_status, session_id)
        return updated

    @staticmethod
    def _payment_applied(record: LetterRecord, *, session_id: str, payment_status: str) -> bool:
        return record.payment_session_id == session_id and record.payment_status == payment_status

    def _write_transition(self, record: LetterRecord, fields: dict[str, Any], *, target: str) -> LetterRecord:
        try:
            return self._store.update(record.id, fields, expected_version=record.version)
        except Conflict:
            latest = self._store.get(record.id)
            if not reached(record, target) and reached(latest, target):
                logger.info("letter %s reached %s through a concurrent writer", latest.id, target)
                return latest
            raise

    def _record_failure(self, record: LetterRecord, exc: AdapterFailure, *, status: str | None) -> None:
        fields: dict[str, Any] = {"last_error": exc.message}
        if status is not None:
            fields["status"] = status
        logger.warning("letter %s %s failed: %s", record.id, exc.adapter, exc.reason)
        try:
            self._store.update(record.id, fields, expected_version=record.version)
        except Conflict:
            # A newer write wins; the failure is still reported to the caller.
            logger.warning("letter %s failure not recorded: record changed concurrently", record.id)
