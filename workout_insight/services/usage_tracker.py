"""Daily generation quota bookkeeping.

A day is a calendar date in a fixed reference timezone (the provider resets
its quota at Pacific midnight), not the caller's local day. Counters are reset
lazily: a row whose ``reset_key`` is not today's reads as zero even before it
is rewritten.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from sqlalchemy import case, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workout_insight.config import Settings, get_settings
from workout_insight.models.database_models import UsageCounter


logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class UsageSnapshot:
    """Read-only view of the current day's consumption."""

    scope: str
    count: int
    reset_key: str
    daily_limit: int
    seconds_until_reset: int

    @property
    def remaining(self) -> int:
        return max(0, self.daily_limit - self.count)

    @property
    def is_exhausted(self) -> bool:
        return self.remaining == 0


class UsageTracker:
    """Reads and updates the per-day usage counter for one scope."""

    def __init__(
        self,
        session: Session,
        user_id: str | None = None,
        settings: Settings | None = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self._now = now
        self._tz = ZoneInfo(self.settings.quota_timezone)
        self.daily_limit = self.settings.daily_generation_limit

        if self.settings.usage_scope == "user":
            if not user_id:
                raise ValueError("Per-user usage scope requires a user id")
            self.scope = user_id
        else:
            self.scope = GLOBAL_SCOPE

    def reset_key(self, moment: datetime | None = None) -> str:
        """Calendar date (YYYY-MM-DD) of ``moment`` in the quota timezone."""
        moment = moment or self._now()
        return moment.astimezone(self._tz).date().isoformat()

    def seconds_until_reset(self, moment: datetime | None = None) -> int:
        """Seconds until the next midnight in the quota timezone."""
        moment = moment or self._now()
        local = moment.astimezone(self._tz)
        next_midnight = datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=self._tz)
        delta = next_midnight.astimezone(timezone.utc) - moment.astimezone(timezone.utc)
        return max(0, math.ceil(delta.total_seconds()))

    def _get_counter(self, refresh: bool = False) -> UsageCounter | None:
        stmt = select(UsageCounter).where(UsageCounter.scope == self.scope)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def effective_count(self, counter: UsageCounter | None, today: str) -> int:
        if counter is None or counter.reset_key != today:
            return 0
        return counter.count

    def snapshot(self) -> UsageSnapshot:
        """Current usage without mutating anything."""
        now = self._now()
        today = self.reset_key(now)
        counter = self._get_counter(refresh=True)
        return UsageSnapshot(
            scope=self.scope,
            count=self.effective_count(counter, today),
            reset_key=today,
            daily_limit=self.daily_limit,
            seconds_until_reset=self.seconds_until_reset(now),
        )

    def remaining_quota(self) -> int:
        return self.snapshot().remaining

    def reserve(self) -> str | None:
        """
        Atomically claim one generation slot for today, before calling the backend.

        A single conditional update increments the stored count when it is
        below the limit (or restarts it at 1 when ``reset_key`` is an older
        day). An insert is attempted only when no row exists for the scope yet.
        The claim is committed immediately so concurrent requests see it.

        Returns:
            The reset key the slot was taken for, or None when today's quota is spent
        """
        today = self.reset_key()
        if self.daily_limit <= 0:
            return None

        stmt = (
            update(UsageCounter)
            .where(
                UsageCounter.scope == self.scope,
                or_(UsageCounter.reset_key != today, UsageCounter.count < self.daily_limit),
            )
            .values(
                count=case(
                    (UsageCounter.reset_key == today, UsageCounter.count + 1),
                    else_=1,
                ),
                reset_key=today,
                updated_at=self._now(),
            )
            .execution_options(synchronize_session=False)
        )
        reserved = self.session.execute(stmt).rowcount == 1

        if not reserved and self._get_counter(refresh=True) is None:
            try:
                with self.session.begin_nested():
                    self.session.add(
                        UsageCounter(scope=self.scope, count=1, reset_key=today, updated_at=self._now())
                    )
                reserved = True
            except IntegrityError:
                # Another request created the row first; fall back to the update.
                logger.debug("Usage counter for %s created concurrently, retrying update", self.scope)
                reserved = self.session.execute(stmt).rowcount == 1

        self.session.commit()
        if not reserved:
            logger.info("Usage for %s on %s is at the limit of %d", self.scope, today, self.daily_limit)
            return None

        logger.info("Reserved generation slot for %s on %s", self.scope, today)
        return today

    def release(self, reset_key: str) -> None:
        """Give back a slot taken by :meth:`reserve` after a failed generation and commit."""
        self.session.execute(
            update(UsageCounter)
            .where(
                UsageCounter.scope == self.scope,
                UsageCounter.reset_key == reset_key,
                UsageCounter.count > 0,
            )
            .values(count=UsageCounter.count - 1, updated_at=self._now())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        logger.info("Released generation slot for %s on %s", self.scope, reset_key)

    def set_count(self, count: int) -> UsageSnapshot:
        """Overwrite today's count (manual correction) and commit."""
        if count < 0:
            raise ValueError("count must be >= 0")

        today = self.reset_key()
        counter = self._get_counter(refresh=True)
        if counter is None:
            counter = UsageCounter(scope=self.scope, count=count, reset_key=today)
            self.session.add(counter)
        else:
            counter.count = count
            counter.reset_key = today
        self.session.commit()
        logger.info("Usage for %s manually set to %d on %s", self.scope, count, today)
        return self.snapshot()
