"""Error taxonomy for the consent API.

Every error carries the HTTP status it maps to and a stable machine
readable ``code``. The handlers in ``consently.main`` render them as::

    {"error": message, "code": code, **details}
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class ConsentlyError(Exception):
    """Base class for all errors surfaced to API clients."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        self.headers = headers or {}
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.details}


class ValidationError(ConsentlyError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class AuthError(ConsentlyError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized", **kwargs: Any):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class NotFoundError(ConsentlyError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class QuotaExceededError(ConsentlyError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "QUOTA_EXCEEDED"

    def __init__(self, used: int, limit: int, plan: str):
        self.used = used
        self.limit = limit
        self.plan = plan
        super().__init__(
            "Monthly consent limit reached for your plan",
            details={"used": used, "limit": limit, "plan": plan},
        )


class RateLimitError(ConsentlyError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMITED"

    def __init__(self, retry_after: int, limit: int | None = None, message: str | None = None):
        self.retry_after = retry_after
        headers = {"Retry-After": str(retry_after), "X-RateLimit-Remaining": "0"}
        if limit is not None:
            headers["X-RateLimit-Limit"] = str(limit)
        super().__init__(
            message or "Rate limit exceeded. Please try again later.",
            details={"retryAfter": retry_after},
            headers=headers,
        )


class ConflictError(ConsentlyError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class ExpiredError(ConsentlyError):
    status_code = status.HTTP_410_GONE
    code = "EXPIRED"


class RevokedError(ConsentlyError):
    status_code = status.HTTP_410_GONE
    code = "REVOKED"


class OtpNotFoundError(ConsentlyError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "OTP_NOT_FOUND"

    def __init__(self):
        super().__init__("Invalid or expired OTP. Please request a new one.")


class MaxAttemptsError(ConsentlyError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "MAX_ATTEMPTS_EXCEEDED"

    def __init__(self):
        super().__init__("Maximum verification attempts exceeded. Please request a new OTP.")


class InvalidCodeError(ConsentlyError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_OTP"

    def __init__(self, remaining_attempts: int):
        self.remaining_attempts = max(0, remaining_attempts)
        super().__init__(
            "Invalid OTP code.",
            details={
                "remainingAttempts": self.remaining_attempts,
                "maxAttemptsExceeded": self.remaining_attempts <= 0,
            },
        )


class ServiceUnavailableError(ConsentlyError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "SERVICE_UNAVAILABLE"


class InternalError(ConsentlyError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"
