"""Unified business error model.

Every error that crosses a module boundary derives from BusinessError so the
HTTP layer and the streaming layer can render it the same way:

- blocking callers receive ``{"error": {"code", "message", "context"}}``;
- streaming callers receive a final ``error`` chunk carrying code and message.
"""

from typing import Any, Dict, Optional


class BusinessError(Exception):
    """Base class for business errors.

    Attributes:
        code: machine readable error code (e.g. "AI_PROVIDER_ERROR").
        message: human readable message.
        http_status: status code used when the error is mapped to HTTP.
        extra: additional context (provider, upstream status, amounts, ...).
    """

    code = "INTERNAL_ERROR"
    http_status = 400

    def __init__(self, code: Optional[str] = None, message: str = "", http_status: Optional[int] = None, **extra):
        self.code = code or type(self).code
        self.message = message
        self.http_status = http_status if http_status is not None else type(self).http_status
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.extra:
            payload["context"] = dict(self.extra)
        return payload


class ValidationError(BusinessError):
    """Malformed request shape or configuration."""

    code = "VALIDATION_ERROR"
    http_status = 400


class UnauthorizedError(BusinessError):
    code = "UNAUTHORIZED"
    http_status = 401


class NotFoundError(BusinessError):
    """Resource missing or not owned by the caller."""

    code = "NOT_FOUND"
    http_status = 404

    @classmethod
    def for_resource(cls, resource: str) -> "NotFoundError":
        return cls(message=f"{resource} not found", resource=resource)


class ConflictError(BusinessError):
    """Idempotency replay: the request id was already processed."""

    code = "CONFLICT"
    http_status = 409


class InsufficientCreditsError(BusinessError):
    """Credit pre-check failed; carries the required and available amounts."""

    code = "INSUFFICIENT_CREDITS"
    http_status = 402

    def __init__(self, required: float, available: float):
        super().__init__(
            message=f"Insufficient credits. Required: {required}, Available: {available}",
            required=required,
            available=available,
        )
        self.required = required
        self.available = available


class RateLimitError(BusinessError):
    """Caller exceeded the request rate allowed by the rate limiter."""

    code = "RATE_LIMIT_EXCEEDED"
    http_status = 429


class ProviderError(BusinessError):
    """Upstream provider failure (non-2xx response or unexpected exception)."""

    code = "AI_PROVIDER_ERROR"
    http_status = 502


class ProviderNetworkError(ProviderError):
    """Connection level failure before the upstream produced a response."""


class ProviderRateLimitError(ProviderError):
    """Upstream answered 429; callers decide on back-off."""

    http_status = 429


class ProviderTimeoutError(BusinessError):
    code = "AI_PROVIDER_TIMEOUT"
    http_status = 504


class ProviderUnavailableError(BusinessError):
    """Requested provider is not configured."""

    code = "AI_PROVIDER_UNAVAILABLE"
    http_status = 503


class NoAvailableModelsError(ProviderUnavailableError):
    """No configured provider can serve a model; not retried."""


class BillingError(BusinessError):
    code = "BILLING_ERROR"
    http_status = 500


class InternalError(BusinessError):
    """Catch-all for anything not classified above."""

    code = "INTERNAL_ERROR"
    http_status = 500
