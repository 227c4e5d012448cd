from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from claimletter.adapters.deadline import call_with_deadline
from claimletter.errors import AdapterFailure, ApiError

ADAPTER_NAME = "payments"


def _import_stripe():
    try:
        import stripe  # type: ignore
    except Exception as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("stripe is required for the payments adapter") from exc
    return stripe


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    try:
        return obj[name]
    except (KeyError, TypeError, IndexError):
        return getattr(obj, name, None)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    payment_status: str
    customer_email: str | None
    client_reference_id: str | None


class StripePaymentsAdapter:
    backend_name = "stripe"

    def __init__(
        self,
        *,
        secret_key: str,
        price_id: str = "",
        webhook_secret: str = "",
        timeout_s: float = 15.0,
    ) -> None:
        self._secret_key = secret_key
        self._price_id = price_id
        self._webhook_secret = webhook_secret
        self._timeout_s = timeout_s

    def _require_key(self) -> None:
        if not self._secret_key:
            raise AdapterFailure(ADAPTER_NAME, "STRIPE_SECRET_KEY is not configured", http_status=503)

    def retrieve_price(self, price_id: str) -> Any:
        self._require_key()
        stripe = _import_stripe()
        return call_with_deadline(
            ADAPTER_NAME,
            lambda: stripe.Price.retrieve(price_id, api_key=self._secret_key, expand=["product"]),
            timeout_s=self._timeout_s,
        )

    def retrieve_session(self, session_id: str) -> CheckoutSession:
        self._require_key()
        stripe = _import_stripe()
        session = call_with_deadline(
            ADAPTER_NAME,
            lambda: stripe.checkout.Session.retrieve(session_id, api_key=self._secret_key),
            timeout_s=self._timeout_s,
        )
        details = _field(session, "customer_details") or {}
        return CheckoutSession(
            id=str(_field(session, "id") or session_id),
            payment_status=str(_field(session, "payment_status") or "unpaid"),
            customer_email=_field(session, "customer_email") or _field(details, "email"),
            client_reference_id=_field(session, "client_reference_id"),
        )

    def construct_event(self, payload: bytes, signature: str) -> Any:
        """Verify a webhook delivery and return the parsed event."""
        if not self._webhook_secret:
            raise AdapterFailure(ADAPTER_NAME, "STRIPE_WEBHOOK_SECRET is not configured", http_status=503)
        stripe = _import_stripe()
        try:
            return stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except ValueError as exc:
            raise ApiError(
                code="PAYMENT_PAYLOAD_INVALID",
                message="webhook payload is not valid JSON",
                error_class="validation",
                retryable=False,
                http_status=400,
            ) from exc
        except stripe.SignatureVerificationError as exc:
            raise ApiError(
                code="PAYMENT_SIGNATURE_INVALID",
                message="webhook signature verification failed",
                error_class="security",
                retryable=False,
                http_status=400,
            ) from exc

    def probe(self) -> str:
        if not self._price_id:
            raise AdapterFailure(ADAPTER_NAME, "STRIPE_PRICE_RESPONSE is not configured", http_status=503)
        price = self.retrieve_price(self._price_id)
        if _field(price, "id") != self._price_id:
            raise AdapterFailure(ADAPTER_NAME, f"price {self._price_id} not returned")
        product = _field(price, "product")
        if product is None or isinstance(product, str):
            raise AdapterFailure(ADAPTER_NAME, f"price {self._price_id} has no expanded product")
        name = _field(product, "name") or _field(product, "id")
        return f"price {self._price_id} -> product {name}"


@dataclass(frozen=True)
class PaymentEvent:
    record_id: str
    session_id: str
    payment_status: str
    user_email: str | None = None


_PAID_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}


def parse_payment_event(event: Any) -> PaymentEvent | None:
    """Map a verified webhook event onto a payment update; None for events the pipeline ignores.

    Checkout sessions carry the letter id in ``client_reference_id``; refunds
    carry it, with the session id, in the charge metadata.
    """
    event_type = _field(event, "type")
    data = _field(event, "data") or {}
    obj = _field(data, "object") or {}
    if event_type in _PAID_EVENTS:
        record_id = _field(obj, "client_reference_id")
        if not record_id or _field(obj, "payment_status") != "paid":
            return None
        details = _field(obj, "customer_details") or {}
        return PaymentEvent(
            record_id=str(record_id),
            session_id=str(_field(obj, "id")),
            payment_status="paid",
            user_email=_field(obj, "customer_email") or _field(details, "email"),
        )
    if event_type == "charge.refunded":
        metadata = _field(obj, "metadata") or {}
        record_id = _field(metadata, "record_id")
        session_id = _field(metadata, "checkout_session_id")
        if not record_id or not session_id:
            return None
        return PaymentEvent(record_id=str(record_id), session_id=str(session_id), payment_status="refunded")
    return None
