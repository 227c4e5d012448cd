from __future__ import annotations

import logging
import os
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from claimletter.adapters.payments import parse_payment_event
from claimletter.context import PipelineContext, build_context_from_env
from claimletter.errors import ApiError, PaymentRequired
from claimletter.models import LetterRecord
from claimletter.schemas import (
    AnalyzeRequest,
    CreateLetterRequest,
    GenerateResponseRequest,
    SendLetterRequest,
    error_envelope,
    success_envelope,
)
from claimletter.security import redact_text

logger = logging.getLogger(__name__)


def _trace_id_from_request(request: Request) -> str:
    trace_id = getattr(request.state, "trace_id", None)
    if trace_id:
        return trace_id
    return uuid.uuid4().hex


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    return f"req_{uuid.uuid4().hex[:12]}"


def _error_response(
    request: Request,
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    status_code: int,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_envelope(
            code=code,
            message=redact_text(message),
            error_class=error_class,
            retryable=retryable,
            trace_id=_trace_id_from_request(request),
        ),
    )


def _record_payload(record: LetterRecord) -> dict[str, object]:
    return record.to_dict()


def create_app(context: PipelineContext | None = None) -> FastAPI:
    ctx = context if context is not None else build_context_from_env()
    app = FastAPI(title="Claim Letter Pipeline API", version="0.1.0")
    app.state.context = ctx

    cors_origins = os.environ.get("CORS_ALLOW_ORIGINS", "*")
    allow_origins = [x.strip() for x in cors_origins.split(",") if x.strip()]
    if allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_credentials="*" not in allow_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _ensure_paid(record_id: str) -> None:
        if not ctx.settings.require_payment:
            return
        record = ctx.lifecycle.get(record_id)
        if not record.is_paid:
            raise PaymentRequired(record_id)

    @app.middleware("http")
    async def add_trace_id(request: Request, call_next):
        incoming_trace_id = request.headers.get("x-trace-id", "").strip()
        request.state.trace_id = incoming_trace_id or uuid.uuid4().hex
        request.state.request_id = request.headers.get("x-request-id", f"req_{uuid.uuid4().hex[:12]}")
        response = await call_next(request)
        response.headers["x-trace-id"] = _trace_id_from_request(request)
        response.headers["x-request-id"] = _request_id_from_request(request)
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        if exc.http_status >= 500:
            logger.warning("request %s failed: %s %s", request.url.path, exc.code, redact_text(exc.message))
        return _error_response(
            request,
            code=exc.code,
            message=exc.message,
            error_class=exc.error_class,
            retryable=exc.retryable,
            status_code=exc.http_status,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return _error_response(
            request,
            code="REQ_VALIDATION_FAILED",
            message="invalid payload",
            error_class="validation",
            retryable=False,
            status_code=400,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error_response(
                request,
                code="REQ_NOT_FOUND",
                message="resource not found",
                error_class="validation",
                retryable=False,
                status_code=404,
            )
        return _error_response(
            request,
            code="REQ_HTTP_ERROR",
            message=str(exc.detail),
            error_class="validation",
            retryable=False,
            status_code=exc.status_code,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("unhandled %s on %s", type(exc).__name__, request.url.path)
        return _error_response(
            request,
            code="INTERNAL_ERROR",
            message="internal error",
            error_class="internal",
            retryable=True,
            status_code=500,
        )

    @app.get("/healthz")
    def healthz(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, _trace_id_from_request(request))

    @app.get("/api/v1/readiness")
    def readiness(request: Request) -> JSONResponse:
        report = ctx.readiness().check_all()
        content = success_envelope(report.as_dict(), _trace_id_from_request(request), message=report.message)
        content["success"] = report.all_passed
        return JSONResponse(status_code=200 if report.all_passed else 503, content=content)

    @app.post("/api/v1/letters")
    def create_letter(payload: CreateLetterRequest, request: Request) -> dict[str, object]:
        record = ctx.lifecycle.create(
            letter_text=payload.letter_text,
            user_email=payload.user_email,
            price_id=payload.price_id or ctx.settings.stripe_price_response or None,
        )
        return success_envelope(_record_payload(record), _trace_id_from_request(request))

    @app.get("/api/v1/letters/{record_id}")
    def get_letter(record_id: str, request: Request) -> dict[str, object]:
        record = ctx.lifecycle.get(record_id)
        return success_envelope(_record_payload(record), _trace_id_from_request(request))

    @app.post("/api/v1/letters/analyze")
    def analyze_letter(payload: AnalyzeRequest, request: Request) -> dict[str, object]:
        record = ctx.lifecycle.analyze(payload.record_id, payload.letter_text)
        data = {
            "record_id": record.id,
            "status": record.status,
            "summary": record.summary,
            "analysis": record.analysis,
            "version": record.version,
        }
        return success_envelope(data, _trace_id_from_request(request))

    @app.post("/api/v1/letters/generate-response")
    def generate_response(payload: GenerateResponseRequest, request: Request) -> dict[str, object]:
        _ensure_paid(payload.record_id)
        result = ctx.lifecycle.generate_response(
            payload.record_id,
            payload.summary,
            tone=payload.tone,
            approach=payload.approach,
            style=payload.style,
        )
        data = {
            "record_id": result.record.id,
            "status": result.record.status,
            "ai_response": result.record.ai_response,
            "style_options": result.style.as_dict(),
            "model": result.model,
            "version": result.record.version,
        }
        return success_envelope(data, _trace_id_from_request(request))

    @app.post("/api/v1/letters/send")
    def send_letter(payload: SendLetterRequest, request: Request) -> dict[str, object]:
        _ensure_paid(payload.record_id)
        receipt = ctx.lifecycle.finalize_delivery(payload.record_id, payload.to)
        return success_envelope(receipt.as_dict(), _trace_id_from_request(request), message="email sent")

    @app.post("/api/v1/payments/webhook")
    async def payments_webhook(request: Request) -> dict[str, object]:
        body = await request.body()
        signature = request.headers.get("stripe-signature", "")
        if not signature:
            raise ApiError(
                code="PAYMENT_SIGNATURE_INVALID",
                message="stripe-signature header is required",
                error_class="security",
                retryable=False,
                http_status=400,
            )
        event = await run_in_threadpool(ctx.payments.construct_event, body, signature)
        payment = parse_payment_event(event)
        if payment is None:
            return success_envelope({"handled": False}, _trace_id_from_request(request))
        record = await run_in_threadpool(
            lambda: ctx.lifecycle.record_payment(
                payment.record_id,
                session_id=payment.session_id,
                payment_status=payment.payment_status,
                user_email=payment.user_email,
            )
        )
        data = {"handled": True, "record_id": record.id, "payment_status": record.payment_status}
        return success_envelope(data, _trace_id_from_request(request))

    return app


app = create_app()
