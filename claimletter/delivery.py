from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from claimletter.adapters.email import EmailAttachment, EmailMessage, SendGridEmailAdapter
from claimletter.adapters.object_storage import ObjectStorageBackend
from claimletter.adapters.rendering import PdfRenderer
from claimletter.errors import AdapterFailure, ApiError, InvalidTransition
from claimletter.models import LetterRecord

logger = logging.getLogger(__name__)

ATTACHMENT_FILENAME = "Insurance_Appeal.pdf"
DELIVERY_SUBJECT = "Your Insurance Appeal Letter is Ready"
DELIVERY_TEXT = "Attached is your AI-generated insurance appeal letter PDF."
DELIVERY_HTML = """<h2>Your Insurance Appeal Letter is Ready</h2>
<p>Thank you for using ClaimLetterAI! Your AI-generated appeal letter is attached as a PDF.</p>
<p>Please review the letter carefully before sending it to your insurance company.
Remember to consult with an insurance attorney for complex matters.</p>
<p>Best regards,<br>The ClaimLetterAI Team</p>"""


@dataclass(frozen=True)
class DeliveryReceipt:
    record_id: str
    to: str
    attachment_filename: str
    attachment_bytes: int
    storage_uri: str | None
    message_id: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "to": self.to,
            "attachment_filename": self.attachment_filename,
            "attachment_bytes": self.attachment_bytes,
            "storage_uri": self.storage_uri,
            "archived": self.storage_uri is not None,
            "message_id": self.message_id,
        }


class DeliveryFinalizer:
    """Render a generated response to PDF, archive it and email it as one attachment.

    Delivery never touches the record's status, so it can be repeated.
    """

    def __init__(
        self,
        *,
        renderer: PdfRenderer,
        email: SendGridEmailAdapter,
        storage: ObjectStorageBackend | None = None,
        attachment_filename: str = ATTACHMENT_FILENAME,
    ) -> None:
        self._renderer = renderer
        self._email = email
        self._storage = storage
        self._attachment_filename = attachment_filename

    def deliver(self, record: LetterRecord, to: str) -> DeliveryReceipt:
        destination = (to or "").strip()
        if not destination:
            raise ApiError(
                code="DELIVERY_ADDRESS_REQUIRED",
                message="destination address is required",
                error_class="validation",
                retryable=False,
                http_status=400,
            )
        if not record.has_response:
            raise InvalidTransition(
                f"letter record {record.id} has no generated response to deliver",
                current_status=record.status,
            )

        document = self._renderer.render_to_document(record.ai_response or "")
        storage_uri = self._archive(record, document)
        message = EmailMessage(
            to=destination,
            subject=DELIVERY_SUBJECT,
            text=DELIVERY_TEXT,
            html=DELIVERY_HTML,
            attachments=(EmailAttachment(filename=self._attachment_filename, content=document),),
        )
        message_id = self._email.send(message)
        logger.info("letter %s delivered bytes=%d archived=%s", record.id, len(document), storage_uri is not None)
        return DeliveryReceipt(
            record_id=record.id,
            to=destination,
            attachment_filename=self._attachment_filename,
            attachment_bytes=len(document),
            storage_uri=storage_uri,
            message_id=message_id,
        )

    def _archive(self, record: LetterRecord, document: bytes) -> str | None:
        if self._storage is None:
            return None
        try:
            return self._storage.archive_document(
                record_id=record.id,
                filename=self._attachment_filename,
                document=document,
                media_type="application/pdf",
            )
        except AdapterFailure as exc:
            # The email still goes out; the receipt reports archived=false.
            logger.warning("letter %s archive failed: %s", record.id, exc.reason)
            return None
