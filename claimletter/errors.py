from __future__ import annotations


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status


class NotFound(ApiError):
    def __init__(self, record_id: str) -> None:
        super().__init__(
            code="LETTER_NOT_FOUND",
            message=f"letter record not found: {record_id}",
            error_class="validation",
            retryable=False,
            http_status=404,
        )
        self.record_id = record_id


class InvalidTransition(ApiError):
    def __init__(self, message: str, *, current_status: str | None = None) -> None:
        super().__init__(
            code="LETTER_TRANSITION_INVALID",
            message=message,
            error_class="business_rule",
            retryable=False,
            http_status=409,
        )
        self.current_status = current_status


class Conflict(ApiError):
    """Raised when a conditional write loses against a concurrent writer."""

    def __init__(self, record_id: str, *, expected_version: int | None, actual_version: int | None) -> None:
        super().__init__(
            code="LETTER_VERSION_CONFLICT",
            message=(
                f"letter record {record_id} changed concurrently "
                f"(expected version {expected_version}, found {actual_version})"
            ),
            error_class="concurrency",
            retryable=True,
            http_status=409,
        )
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class AdapterFailure(ApiError):
    """A dependency call failed: timeout, malformed payload or non-success status."""

    def __init__(self, adapter: str, reason: str, *, timeout: bool = False, http_status: int | None = None) -> None:
        suffix = "TIMEOUT" if timeout else "FAILED"
        super().__init__(
            code=f"ADAPTER_{adapter.upper()}_{suffix}",
            message=f"{adapter} call failed: {reason}",
            error_class="availability",
            retryable=True,
            http_status=http_status or (503 if timeout else 500),
        )
        self.adapter = adapter
        self.reason = reason
        self.timeout = timeout


class ConfigurationMissing(ApiError):
    def __init__(self, keys: list[str]) -> None:
        super().__init__(
            code="CONFIG_MISSING",
            message=f"required configuration missing: {', '.join(keys)}",
            error_class="availability",
            retryable=False,
            http_status=503,
        )
        self.keys = list(keys)


class PaymentRequired(ApiError):
    def __init__(self, record_id: str) -> None:
        super().__init__(
            code="PAYMENT_REQUIRED",
            message=f"letter record {record_id} has not been paid for",
            error_class="business_rule",
            retryable=False,
            http_status=402,
        )
        self.record_id = record_id
