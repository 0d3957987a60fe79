"""SQLAlchemy ORM models for cached analyses and generation usage."""
from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workout_insight.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CachedAnalysis(Base):
    """Latest AI analysis generated for one (user, activity) pair."""

    __tablename__ = "cached_analyses"
    __table_args__ = (
        UniqueConstraint("user_id", "activity_id", name="uq_cached_analyses_user_activity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    activity_id: Mapped[int] = mapped_column(Integer, nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    prompt_version: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Timestamps (updated_at drives the re-analysis cooldown)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class UsageCounter(Base):
    """Rolling per-day generation counter (one row per scope)."""

    __tablename__ = "usage_counters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)  # "global" or a user id
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reset_key: Mapped[str] = mapped_column(String(10), nullable=False)  # YYYY-MM-DD in the quota timezone

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
