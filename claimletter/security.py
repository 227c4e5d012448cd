from __future__ import annotations

import re

SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "token",
        "secret",
        "password",
        "api_key",
        "apikey",
        "access_token",
        "openai_api_key",
        "stripe_secret_key",
        "stripe_webhook_secret",
        "sendgrid_api_key",
        "postgres_dsn",
        "database_url",
    }
)

# OpenAI, Stripe and SendGrid key shapes, bearer headers and DSN passwords.
_SECRET_PATTERNS = (
    re.compile(r"\bsk-[A-Za-z0-9_-]{8,}"),
    re.compile(r"\b(?:sk|rk|pk)_(?:live|test)_[A-Za-z0-9]{8,}"),
    re.compile(r"\bwhsec_[A-Za-z0-9]{8,}"),
    re.compile(r"\bSG\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}"),
    re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"),
    re.compile(r"(?<=://)[^:/@\s]+:[^@\s]+(?=@)"),
)

REDACTED = "***REDACTED***"


def redact_text(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(REDACTED, text)
    return text


def redact_sensitive(value: object) -> object:
    if isinstance(value, dict):
        redacted: dict[str, object] = {}
        for key, item in value.items():
            if str(key).lower() in SENSITIVE_KEYS:
                redacted[str(key)] = REDACTED
            else:
                redacted[str(key)] = redact_sensitive(item)
        return redacted
    if isinstance(value, list):
        return [redact_sensitive(x) for x in value]
    if isinstance(value, str):
        return redact_text(value)
    return value
