"""Error taxonomy surfaced by the analysis lifecycle."""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Stable, caller-visible failure categories."""

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    VALIDATION_ERROR = "validation_error"
    COOLDOWN_ACTIVE = "cooldown_active"
    QUOTA_EXHAUSTED = "quota_exhausted"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    AUTH_CONFIG_ERROR = "auth_config_error"
    EMPTY_RESULT = "empty_result"
    UNKNOWN = "unknown"


class AnalysisError(Exception):
    """Base class for every classified analysis failure."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        retry_after_seconds: int | None = None,
        cached_fallback: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retry_after_seconds = retry_after_seconds
        self.cached_fallback = cached_fallback

    def to_payload(self) -> dict:
        payload: dict = {"error_kind": self.kind.value, "message": self.message}
        if self.retry_after_seconds is not None:
            payload["retry_after_seconds"] = self.retry_after_seconds
        if self.cached_fallback is not None:
            payload["cached_fallback"] = self.cached_fallback
        return payload


class UnauthorizedError(AnalysisError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = 401


class ForbiddenError(AnalysisError):
    kind = ErrorKind.FORBIDDEN
    status_code = 403


class AnalysisValidationError(AnalysisError):
    kind = ErrorKind.VALIDATION_ERROR
    status_code = 422


class CooldownActiveError(AnalysisError):
    """Forced re-analysis requested before the cooldown window elapsed."""

    kind = ErrorKind.COOLDOWN_ACTIVE
    status_code = 429


class QuotaExhaustedError(AnalysisError):
    """Daily generation limit reached; retry_after_seconds counts down to the reset."""

    kind = ErrorKind.QUOTA_EXHAUSTED
    status_code = 429


class RateLimitedError(AnalysisError):
    kind = ErrorKind.RATE_LIMITED
    status_code = 429


class UpstreamUnavailableError(AnalysisError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 503


class AuthConfigError(AnalysisError):
    kind = ErrorKind.AUTH_CONFIG_ERROR
    status_code = 502


class EmptyResultError(AnalysisError):
    kind = ErrorKind.EMPTY_RESULT
    status_code = 502


class UnknownAnalysisError(AnalysisError):
    kind = ErrorKind.UNKNOWN
    status_code = 500
