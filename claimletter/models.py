from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

STATUS_UPLOADED = "uploaded"
STATUS_ANALYZED = "analyzed"
STATUS_RESPONDED = "responded"
STATUS_ERROR = "error"

LETTER_STATUSES: tuple[str, ...] = (STATUS_UPLOADED, STATUS_ANALYZED, STATUS_RESPONDED, STATUS_ERROR)

PAYMENT_UNPAID = "unpaid"
PAYMENT_PAID = "paid"
PAYMENT_REFUNDED = "refunded"

PAYMENT_STATUSES: tuple[str, ...] = (PAYMENT_UNPAID, PAYMENT_PAID, PAYMENT_REFUNDED)

# Position along the forward path; error sits outside it.
STATUS_RANK: dict[str, int] = {
    STATUS_UPLOADED: 0,
    STATUS_ANALYZED: 1,
    STATUS_RESPONDED: 2,
}

# Fields a caller may never overwrite through a gateway update.
IMMUTABLE_FIELDS = frozenset({"id", "created_at", "version"})


def utcnow_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def new_record_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class LetterRecord:
    id: str
    created_at: str
    letter_text: str
    user_email: str | None = None
    payment_session_id: str | None = None
    payment_status: str = PAYMENT_UNPAID
    price_id: str | None = None
    analysis: dict[str, Any] | None = None
    summary: str | None = None
    ai_response: str | None = None
    status: str = STATUS_UPLOADED
    last_error: str | None = None
    version: int = 1
    updated_at: str = field(default_factory=utcnow_iso)

    @classmethod
    def new(
        cls,
        *,
        letter_text: str,
        user_email: str | None = None,
        price_id: str | None = None,
    ) -> "LetterRecord":
        now = utcnow_iso()
        return cls(
            id=new_record_id(),
            created_at=now,
            updated_at=now,
            letter_text=letter_text,
            user_email=user_email,
            price_id=price_id,
        )

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "LetterRecord":
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{key: value for key, value in payload.items() if key in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def with_changes(self, **changes: Any) -> "LetterRecord":
        return replace(self, **changes)

    @property
    def has_response(self) -> bool:
        return bool((self.ai_response or "").strip())

    @property
    def has_summary(self) -> bool:
        return bool((self.summary or "").strip())

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PAYMENT_PAID


def reached(record: LetterRecord, target_status: str) -> bool:
    """True when the record already sits at or beyond ``target_status`` on the forward path."""
    if record.status == STATUS_ERROR:
        return False
    return STATUS_RANK.get(record.status, -1) >= STATUS_RANK[target_status]
