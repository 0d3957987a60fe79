"""Claude text generation with structured failure classification.

Every third-party exception is translated here, once, into a
:class:`GenerationError` carrying a :class:`BackendFailure` kind. Callers never
inspect SDK exception types or message text themselves.
"""
from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from workout_insight.config import Settings, get_settings


logger = logging.getLogger(__name__)


class BackendFailure(str, Enum):
    """Failure categories reported by the generation backend."""

    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    AUTH = "auth"
    SERVER = "server"
    UNKNOWN = "unknown"


class GenerationError(Exception):
    """Structured generation failure."""

    def __init__(self, kind: BackendFailure, message: str, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.retry_after = retry_after


# Fallback markers for exceptions that carry no status information.
_MESSAGE_MARKERS: tuple[tuple[BackendFailure, tuple[str, ...]], ...] = (
    (BackendFailure.RATE_LIMITED, ("429", "quota", "rate limit", "rate_limit", "resource exhausted", "too many requests")),
    (BackendFailure.AUTH, ("401", "403", "api key", "api_key", "unauthorized", "permission", "forbidden")),
    (BackendFailure.NOT_FOUND, ("404", "not found", "not_found")),
    (BackendFailure.SERVER, ("500", "502", "503", "504", "529", "unavailable", "overloaded", "timed out", "timeout")),
)


def parse_retry_after(headers: Any) -> int | None:
    """Read a provider retry hint (seconds) from response headers."""
    if headers is None:
        return None

    raw_ms = headers.get("retry-after-ms")
    if raw_ms:
        try:
            return max(1, math.ceil(float(raw_ms) / 1000))
        except ValueError:
            pass

    raw = headers.get("retry-after")
    if raw:
        try:
            return max(1, math.ceil(float(raw)))
        except ValueError:
            return None
    return None


def _status_kind(status_code: int) -> BackendFailure:
    if status_code == 429:
        return BackendFailure.RATE_LIMITED
    if status_code in (401, 403):
        return BackendFailure.AUTH
    if status_code == 404:
        return BackendFailure.NOT_FOUND
    if status_code >= 500:
        return BackendFailure.SERVER
    return BackendFailure.UNKNOWN


def classify_backend_error(exc: BaseException) -> GenerationError:
    """
    Map an exception raised while calling the backend to a GenerationError.

    Typed SDK errors are classified by class and HTTP status; anything else
    falls back to matching well-known markers in the message text.
    """
    if isinstance(exc, GenerationError):
        return exc

    message = str(exc) or exc.__class__.__name__

    if isinstance(exc, anthropic.APITimeoutError):
        return GenerationError(BackendFailure.SERVER, f"Generation request timed out: {message}")

    if isinstance(exc, anthropic.APIConnectionError):
        return GenerationError(BackendFailure.SERVER, f"Could not reach generation backend: {message}")

    if isinstance(exc, anthropic.APIStatusError):
        kind = _status_kind(exc.status_code)
        retry_after = None
        if kind is BackendFailure.RATE_LIMITED:
            retry_after = parse_retry_after(getattr(exc.response, "headers", None))
        return GenerationError(kind, message, retry_after=retry_after)

    lowered = message.lower()
    for kind, markers in _MESSAGE_MARKERS:
        if any(marker in lowered for marker in markers):
            return GenerationError(kind, message)

    return GenerationError(BackendFailure.UNKNOWN, message)


class GenerationClient:
    """Thin async wrapper around the Anthropic Messages API."""

    def __init__(self, settings: Settings | None = None, client: Any | None = None) -> None:
        settings = settings or get_settings()
        self.model = settings.anthropic_model
        self.max_tokens = settings.generation_max_tokens
        self.temperature = settings.generation_temperature
        # Retries are the caller's decision (cooldown / quota), not the SDK's.
        self.client = client or AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            timeout=settings.generation_timeout_seconds,
            max_retries=0,
        )

    async def generate(self, prompt: str) -> str:
        """
        Generate text for ``prompt``.

        Returns:
            The concatenated text blocks of the response (may be empty)

        Raises:
            GenerationError: On any backend failure
        """
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as exc:
            error = classify_backend_error(exc)
            logger.warning("Generation failed (%s): %s", error.kind.value, error.message)
            raise error from exc

        text_parts = [
            getattr(block, "text", "")
            for block in (response.content or [])
            if getattr(block, "type", "text") == "text"
        ]
        text = "".join(text_parts)
        logger.debug("Generation returned %d characters", len(text))
        return text
