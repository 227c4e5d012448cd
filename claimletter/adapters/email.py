"""
Transactional email through the SendGrid v3 HTTP API.

Messages go out as one POST to ``/v3/mail/send``; attachments are base64
encoded inline. The readiness probe uses SendGrid's sandbox mode, which
validates the request without delivering anything.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from claimletter.errors import AdapterFailure

logger = logging.getLogger(__name__)

ADAPTER_NAME = "email"

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
SANDBOX_ADDRESS = "sandbox@example.com"


@dataclass(frozen=True)
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/pdf"

    def to_payload(self) -> dict[str, str]:
        return {
            "content": base64.b64encode(self.content).decode("ascii"),
            "filename": self.filename,
            "type": self.content_type,
            "disposition": "attachment",
        }


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str
    html: str = ""
    attachments: tuple[EmailAttachment, ...] = field(default_factory=tuple)


class SendGridEmailAdapter:
    backend_name = "sendgrid"

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        timeout_s: float = 15.0,
        send_url: str = SENDGRID_SEND_URL,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._timeout_s = timeout_s
        self._send_url = send_url

    def _build_payload(self, message: EmailMessage, *, sender: str, sandbox: bool = False) -> dict[str, Any]:
        content = [{"type": "text/plain", "value": message.text}]
        if message.html:
            content.append({"type": "text/html", "value": message.html})
        payload: dict[str, Any] = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": sender},
            "subject": message.subject,
            "content": content,
        }
        if message.attachments:
            payload["attachments"] = [item.to_payload() for item in message.attachments]
        if sandbox:
            payload["mail_settings"] = {"sandbox_mode": {"enable": True}}
        return payload

    def _post(self, payload: dict[str, Any]) -> requests.Response:
        if not self._api_key:
            raise AdapterFailure(ADAPTER_NAME, "SENDGRID_API_KEY is not configured", http_status=503)
        try:
            response = requests.post(
                self._send_url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout_s,
            )
        except requests.Timeout as exc:
            raise AdapterFailure(ADAPTER_NAME, f"no response within {self._timeout_s:g}s", timeout=True) from exc
        except requests.RequestException as exc:
            raise AdapterFailure(ADAPTER_NAME, f"{type(exc).__name__}: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise AdapterFailure(ADAPTER_NAME, f"HTTP {response.status_code}")
        return response

    def send(self, message: EmailMessage) -> str | None:
        """Send ``message``; returns the provider message id when one is reported."""
        if not message.to.strip():
            raise AdapterFailure(ADAPTER_NAME, "recipient address is empty")
        if not self._sender:
            raise AdapterFailure(ADAPTER_NAME, "SUPPORT_EMAIL is not configured", http_status=503)
        response = self._post(self._build_payload(message, sender=self._sender))
        message_id = response.headers.get("X-Message-Id")
        logger.info(
            "email accepted by provider attachments=%d message_id=%s",
            len(message.attachments),
            message_id,
        )
        return message_id

    def probe(self) -> str:
        message = EmailMessage(to=SANDBOX_ADDRESS, subject="Readiness Check", text="Readiness check")
        response = self._post(self._build_payload(message, sender=SANDBOX_ADDRESS, sandbox=True))
        return f"sandbox send accepted (HTTP {response.status_code})"
