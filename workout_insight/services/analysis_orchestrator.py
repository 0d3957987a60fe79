"""Lifecycle controller for AI activity analyses.

Decides, per (user, activity), whether to serve the cached analysis, refuse
because of the re-analysis cooldown or the daily quota, or call the generation
backend and persist the result. Backend failures are mapped to the error
taxonomy in :mod:`workout_insight.exceptions`. A daily quota slot is claimed
before the backend call and handed back if the call fails, so only successful,
non-empty generations stay counted.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, ClassVar, Protocol
from weakref import WeakValueDictionary

from sqlalchemy.orm import Session

from workout_insight.config import Settings, get_settings
from workout_insight.exceptions import (
    AnalysisValidationError,
    AuthConfigError,
    CooldownActiveError,
    EmptyResultError,
    QuotaExhaustedError,
    RateLimitedError,
    UnauthorizedError,
    UnknownAnalysisError,
    UpstreamUnavailableError,
)
from workout_insight.models.schemas import AnalyzeRequest
from workout_insight.services.analysis_cache import AnalysisCacheHelper, as_utc
from workout_insight.services.generation_client import (
    BackendFailure,
    GenerationClient,
    GenerationError,
    classify_backend_error,
)
from workout_insight.services.prompt_builder import PromptBuilder, load_prompt_template
from workout_insight.services.stream_sampler import prepare_samples
from workout_insight.services.usage_tracker import UsageTracker, utc_now


logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


@dataclass(frozen=True)
class AnalysisResult:
    """Successful outcome of an analysis request."""

    activity_id: int
    content: str
    is_cached: bool
    updated_at: datetime


def truncate_message(message: str, limit: int) -> str:
    message = " ".join(message.split())
    if len(message) <= limit:
        return message
    return message[: limit - 3].rstrip() + "..."


class AnalysisOrchestrator:
    """Gatekeeper between callers and the generation backend."""

    # One lock per (user, activity) so check-then-persist runs alone per key.
    _key_locks: ClassVar[WeakValueDictionary[tuple[str, int], asyncio.Lock]] = WeakValueDictionary()

    def __init__(
        self,
        session: Session,
        generator: TextGenerator | None = None,
        settings: Settings | None = None,
        prompt_builder: PromptBuilder | None = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.generator = generator or GenerationClient(self.settings)
        self.prompt_builder = prompt_builder or PromptBuilder(
            load_prompt_template(self.settings.prompt_config_path, self.settings.prompt_version)
        )
        self._now = now

    @classmethod
    def _lock_for(cls, key: tuple[str, int]) -> asyncio.Lock:
        lock = cls._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            cls._key_locks[key] = lock
        return lock

    def usage_tracker(self, user_id: str) -> UsageTracker:
        return UsageTracker(self.session, user_id=user_id, settings=self.settings, now=self._now)

    async def analyze(
        self,
        user_id: str | None,
        activity_id: int,
        request: AnalyzeRequest,
    ) -> AnalysisResult:
        """
        Serve, regenerate or refuse an analysis for one activity.

        Raises:
            AnalysisError: A subclass describing why no content could be produced
        """
        if not user_id:
            raise UnauthorizedError("Authentication required")

        lock = self._lock_for((user_id, activity_id))
        async with lock:
            cached = AnalysisCacheHelper.get_cached_analysis(self.session, user_id, activity_id)

            if cached is not None:
                if not request.force_refresh:
                    logger.info("Cache HIT for user=%s activity=%d", user_id, activity_id)
                    return AnalysisResult(
                        activity_id=activity_id,
                        content=cached.content,
                        is_cached=True,
                        updated_at=as_utc(cached.updated_at),
                    )

                wait = AnalysisCacheHelper.cooldown_remaining(
                    cached, self._now(), self.settings.analysis_cooldown_seconds
                )
                if wait > 0:
                    logger.warning(
                        "Re-analysis blocked by cooldown for user=%s activity=%d (%ds left)",
                        user_id,
                        activity_id,
                        wait,
                    )
                    raise CooldownActiveError(
                        f"Re-analysis is available in {wait} seconds",
                        retry_after_seconds=wait,
                        cached_fallback=cached.content,
                    )

            logger.info(
                "Cache %s for user=%s activity=%d - generating",
                "REFRESH" if cached is not None else "MISS",
                user_id,
                activity_id,
            )
            return await self._generate(user_id, activity_id, request)

    async def _generate(self, user_id: str, activity_id: int, request: AnalyzeRequest) -> AnalysisResult:
        if request.profile is None:
            raise AnalysisValidationError("A user profile (age, weight, resting heart rate) is required")
        if request.activity is None:
            raise AnalysisValidationError("Activity data is required to generate an analysis")

        samples = prepare_samples(request.samples, request.streams, self.settings.sample_max_points)
        prompt = self.prompt_builder.build(request.activity, samples, request.profile)

        usage = self.usage_tracker(user_id)
        slot = usage.reserve()
        if slot is None:
            snapshot = usage.snapshot()
            logger.warning(
                "Daily generation quota exhausted for %s (%d/%d), resets in %ds",
                snapshot.scope,
                snapshot.count,
                snapshot.daily_limit,
                snapshot.seconds_until_reset,
            )
            raise QuotaExhaustedError(
                f"Daily analysis limit of {snapshot.daily_limit} reached",
                retry_after_seconds=snapshot.seconds_until_reset,
            )

        try:
            text = await self._call_backend(user_id, activity_id, prompt)
            now = self._now()
            self._persist(user_id, activity_id, text, now)
        except BaseException:
            # Failed and cancelled generations must not stay counted.
            usage.release(slot)
            raise

        logger.info(
            "Generated analysis for user=%s activity=%d (%d chars, template=%s)",
            user_id,
            activity_id,
            len(text),
            self.prompt_builder.version,
        )
        return AnalysisResult(activity_id=activity_id, content=text, is_cached=False, updated_at=now)

    async def _call_backend(self, user_id: str, activity_id: int, prompt: str) -> str:
        try:
            text = await self.generator.generate(prompt)
        except Exception as exc:
            raise self._map_failure(classify_backend_error(exc)) from exc

        if not text or not text.strip():
            logger.warning("Generation returned empty text for user=%s activity=%d", user_id, activity_id)
            raise EmptyResultError("The analysis came back empty. Please try again.")
        return text

    def _persist(self, user_id: str, activity_id: int, text: str, now: datetime) -> None:
        try:
            AnalysisCacheHelper.create_or_update(
                self.session,
                user_id,
                activity_id,
                text,
                now,
                prompt_version=self.prompt_builder.version,
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception("Failed to persist analysis for user=%s activity=%d", user_id, activity_id)
            raise

    def _map_failure(self, error: GenerationError):
        """Translate a backend failure into the caller-facing error taxonomy."""

        if error.kind is BackendFailure.RATE_LIMITED:
            retry_after = error.retry_after or self.settings.analysis_cooldown_seconds
            logger.warning("Generation backend rate limited, retry in %ds", retry_after)
            return RateLimitedError(
                f"The analysis service is rate limited. Try again in {retry_after} seconds.",
                retry_after_seconds=retry_after,
            )

        if error.kind is BackendFailure.SERVER:
            return UpstreamUnavailableError(
                "The analysis service is temporarily unavailable. Please try again later."
            )

        if error.kind in (BackendFailure.AUTH, BackendFailure.NOT_FOUND):
            logger.error("Generation backend configuration problem (%s): %s", error.kind.value, error.message)
            return AuthConfigError("The analysis service is not configured correctly.")

        logger.error("Unclassified generation failure: %s", error.message)
        return UnknownAnalysisError(
            truncate_message(error.message, self.settings.error_message_max_length)
        )
