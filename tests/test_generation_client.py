"""Tests for the generation client and backend failure classification."""
from __future__ import annotations

from types import SimpleNamespace

import anthropic
import httpx
import pytest

from workout_insight.services.generation_client import (
    BackendFailure,
    GenerationClient,
    GenerationError,
    classify_backend_error,
    parse_retry_after,
)


REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(cls, status: int, headers: dict | None = None):
    response = httpx.Response(status, headers=headers or {}, request=REQUEST)
    return cls(f"Error code: {status}", response=response, body=None)


def test_rate_limit_error_carries_retry_hint():
    error = classify_backend_error(_status_error(anthropic.RateLimitError, 429, {"retry-after": "12"}))

    assert error.kind is BackendFailure.RATE_LIMITED
    assert error.retry_after == 12


def test_rate_limit_without_hint():
    error = classify_backend_error(_status_error(anthropic.RateLimitError, 429))

    assert error.kind is BackendFailure.RATE_LIMITED
    assert error.retry_after is None


@pytest.mark.parametrize(
    "cls, status, expected",
    [
        (anthropic.AuthenticationError, 401, BackendFailure.AUTH),
        (anthropic.PermissionDeniedError, 403, BackendFailure.AUTH),
        (anthropic.NotFoundError, 404, BackendFailure.NOT_FOUND),
        (anthropic.InternalServerError, 500, BackendFailure.SERVER),
        (anthropic.InternalServerError, 529, BackendFailure.SERVER),
        (anthropic.BadRequestError, 400, BackendFailure.UNKNOWN),
    ],
)
def test_status_errors_classified_by_code(cls, status, expected):
    assert classify_backend_error(_status_error(cls, status)).kind is expected


def test_timeouts_and_connection_errors_are_server_failures():
    timeout = classify_backend_error(anthropic.APITimeoutError(request=REQUEST))
    connection = classify_backend_error(anthropic.APIConnectionError(request=REQUEST))

    assert timeout.kind is BackendFailure.SERVER
    assert connection.kind is BackendFailure.SERVER


@pytest.mark.parametrize(
    "message, expected",
    [
        ("429 Resource has been exhausted (e.g. check quota).", BackendFailure.RATE_LIMITED),
        ("API key not valid. Please pass a valid API key.", BackendFailure.AUTH),
        ("models/unknown-model is not found for API version v1", BackendFailure.NOT_FOUND),
        ("503 The model is overloaded. Please try again later.", BackendFailure.SERVER),
        ("Something odd happened", BackendFailure.UNKNOWN),
    ],
)
def test_untyped_errors_classified_by_message(message, expected):
    assert classify_backend_error(RuntimeError(message)).kind is expected


def test_generation_error_passes_through():
    original = GenerationError(BackendFailure.AUTH, "bad key")
    assert classify_backend_error(original) is original


def test_parse_retry_after_prefers_milliseconds():
    assert parse_retry_after({"retry-after-ms": "1500", "retry-after": "9"}) == 2
    assert parse_retry_after({"retry-after": "not-a-number"}) is None
    assert parse_retry_after(None) is None


class DummyMessages:
    def __init__(self, result=None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.mark.asyncio
async def test_generate_concatenates_text_blocks(settings):
    messages = DummyMessages(
        SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="## SUMMARY\n"),
                SimpleNamespace(type="tool_use", id="ignored"),
                SimpleNamespace(type="text", text="Great session."),
            ]
        )
    )
    client = GenerationClient(settings, client=SimpleNamespace(messages=messages))

    text = await client.generate("prompt body")

    assert text == "## SUMMARY\nGreat session."
    assert messages.calls[0]["model"] == settings.anthropic_model
    assert messages.calls[0]["messages"] == [{"role": "user", "content": "prompt body"}]


@pytest.mark.asyncio
async def test_generate_returns_empty_string_for_no_content(settings):
    messages = DummyMessages(SimpleNamespace(content=[]))
    client = GenerationClient(settings, client=SimpleNamespace(messages=messages))

    assert await client.generate("prompt") == ""


@pytest.mark.asyncio
async def test_generate_raises_classified_error(settings):
    messages = DummyMessages(error=_status_error(anthropic.RateLimitError, 429, {"retry-after": "30"}))
    client = GenerationClient(settings, client=SimpleNamespace(messages=messages))

    with pytest.raises(GenerationError) as exc_info:
        await client.generate("prompt")

    assert exc_info.value.kind is BackendFailure.RATE_LIMITED
    assert exc_info.value.retry_after == 30
