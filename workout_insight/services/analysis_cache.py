"""Storage helpers for cached activity analyses."""
import logging
import math
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from workout_insight.models.database_models import CachedAnalysis


logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (SQLite hands back naive values)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AnalysisCacheHelper:
    """Helper for reading, upserting and deleting cached analyses."""

    @staticmethod
    def get_cached_analysis(session: Session, user_id: str, activity_id: int) -> CachedAnalysis | None:
        """
        Retrieve the cached analysis for a (user, activity) pair.

        Returns:
            CachedAnalysis or None
        """
        return session.execute(
            select(CachedAnalysis).where(
                CachedAnalysis.user_id == user_id,
                CachedAnalysis.activity_id == activity_id,
            )
        ).scalar_one_or_none()

    @staticmethod
    def cooldown_remaining(record: CachedAnalysis, now: datetime, cooldown_seconds: int) -> int:
        """
        Seconds left before ``record`` may be regenerated (0 when the window has passed).

        Example:
            A record updated 30s ago with a 60s cooldown returns 30.
        """
        elapsed = (as_utc(now) - as_utc(record.updated_at)).total_seconds()
        if elapsed >= cooldown_seconds:
            return 0
        return max(1, math.ceil(cooldown_seconds - elapsed))

    @staticmethod
    def create_or_update(
        session: Session,
        user_id: str,
        activity_id: int,
        content: str,
        now: datetime,
        prompt_version: str | None = None,
    ) -> CachedAnalysis:
        """
        Create or overwrite the single live analysis for a (user, activity) pair.

        The record is flushed but not committed; the caller owns the transaction.

        Returns:
            CachedAnalysis: Created or updated record
        """
        record = AnalysisCacheHelper.get_cached_analysis(session, user_id, activity_id)

        if record:
            record.content = content
            record.prompt_version = prompt_version
            record.updated_at = now
            logger.info("Updated cached analysis user=%s activity=%d", user_id, activity_id)
        else:
            record = CachedAnalysis(
                user_id=user_id,
                activity_id=activity_id,
                content=content,
                prompt_version=prompt_version,
                created_at=now,
                updated_at=now,
            )
            session.add(record)
            logger.info("Created cached analysis user=%s activity=%d", user_id, activity_id)

        session.flush()
        return record

    @staticmethod
    def delete_analysis(session: Session, user_id: str, activity_id: int) -> bool:
        """Delete one cached analysis. Returns True if a record was removed."""
        result = session.execute(
            delete(CachedAnalysis).where(
                CachedAnalysis.user_id == user_id,
                CachedAnalysis.activity_id == activity_id,
            )
        )
        session.commit()
        removed = result.rowcount > 0
        logger.info("Delete cached analysis user=%s activity=%d removed=%s", user_id, activity_id, removed)
        return removed

    @staticmethod
    def delete_all_for_user(session: Session, user_id: str) -> int:
        """Delete every cached analysis belonging to ``user_id``. Returns the number removed."""
        result = session.execute(delete(CachedAnalysis).where(CachedAnalysis.user_id == user_id))
        session.commit()
        logger.info("Deleted %d cached analyses for user=%s", result.rowcount, user_id)
        return result.rowcount
