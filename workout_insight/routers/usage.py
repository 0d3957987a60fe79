"""Usage, quota and model descriptor endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from workout_insight.config import Settings, get_settings
from workout_insight.database import get_db
from workout_insight.exceptions import ForbiddenError
from workout_insight.models.schemas import ModelInfoResponse, ModelLimits, UsageResponse, UsageUpdate
from workout_insight.security import get_current_user_id
from workout_insight.services.usage_tracker import UsageSnapshot, UsageTracker


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["usage"])


def _to_response(snapshot: UsageSnapshot) -> UsageResponse:
    return UsageResponse(
        scope=snapshot.scope,
        count=snapshot.count,
        reset_key=snapshot.reset_key,
        daily_limit=snapshot.daily_limit,
        remaining=snapshot.remaining,
        seconds_until_reset=snapshot.seconds_until_reset,
    )


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> UsageResponse:
    """Today's generation count for the caller's quota scope (read-only)."""

    return _to_response(UsageTracker(db, user_id=user_id).snapshot())


@router.put("/usage", response_model=UsageResponse)
async def set_usage(
    payload: UsageUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> UsageResponse:
    """Overwrite today's generation count (admin-only manual correction)."""

    if user_id not in settings.admin_user_ids:
        logger.warning("User %s is not allowed to overwrite usage counts", user_id)
        raise ForbiddenError("Only administrators can change the usage count")

    logger.info("User %s is setting usage count to %d", user_id, payload.count)
    return _to_response(UsageTracker(db, user_id=user_id, settings=settings).set_count(payload.count))


@router.get("/model", response_model=ModelInfoResponse)
async def get_model_info() -> ModelInfoResponse:
    """Describe the generation model and its provider limits."""

    settings = get_settings()
    return ModelInfoResponse(
        id=settings.anthropic_model,
        name=settings.model_display_name,
        limits=ModelLimits(
            rpm=settings.model_limit_rpm,
            tpm=settings.model_limit_tpm,
            rpd=settings.model_limit_rpd,
        ),
    )
