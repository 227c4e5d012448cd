from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateLetterRequest(_CamelModel):
    letter_text: str = Field(default="", alias="letterText", max_length=100_000)
    user_email: str | None = Field(default=None, alias="userEmail")
    price_id: str | None = Field(default=None, alias="priceId")


class AnalyzeRequest(_CamelModel):
    record_id: str = Field(alias="recordId", min_length=1)
    letter_text: str | None = Field(default=None, alias="letterText", max_length=100_000)


class GenerateResponseRequest(_CamelModel):
    record_id: str = Field(alias="recordId", min_length=1)
    summary: str | None = None
    tone: str | None = None
    approach: str | None = None
    style: str | None = None


class SendLetterRequest(_CamelModel):
    record_id: str = Field(alias="recordId", min_length=1)
    to: str = Field(min_length=3, max_length=320)


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
