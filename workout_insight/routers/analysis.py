"""API endpoints for AI-powered activity analyses."""
from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from workout_insight.database import get_db
from workout_insight.exceptions import AnalysisError
from workout_insight.models.schemas import AnalysisErrorResponse, AnalysisResponse, AnalyzeRequest
from workout_insight.security import get_current_user_id
from workout_insight.services.analysis_cache import AnalysisCacheHelper, as_utc
from workout_insight.services.analysis_orchestrator import AnalysisOrchestrator
from workout_insight.services.generation_client import GenerationClient


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analysis", tags=["analysis"])

_error_responses = {
    status: {"model": AnalysisErrorResponse} for status in (401, 422, 429, 500, 502, 503)
}


@lru_cache()
def get_generation_client() -> GenerationClient:
    """Shared generation client (one HTTP connection pool per process)."""
    return GenerationClient()


@router.post("/{activity_id}", response_model=AnalysisResponse, responses=_error_responses)
async def analyze_activity(
    activity_id: int,
    payload: AnalyzeRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    generator: GenerationClient = Depends(get_generation_client),
) -> AnalysisResponse:
    """
    Return the analysis for an activity, generating it when needed.

    Serves the cached analysis unless ``force_refresh`` is set. Forced
    re-analysis is throttled by a cooldown window and by the daily quota.

    Returns:
        AnalysisResponse: content plus whether it came from the cache
    """
    logger.info(
        "Handling analysis request | user=%s activity=%d force=%s",
        user_id,
        activity_id,
        payload.force_refresh,
    )
    try:
        orchestrator = AnalysisOrchestrator(db, generator=generator)
        result = await orchestrator.analyze(user_id, activity_id, payload)
    except AnalysisError:
        raise
    except Exception:
        logger.exception("Failed to analyse activity %d", activity_id)
        raise HTTPException(status_code=500, detail="Failed to generate analysis")

    return AnalysisResponse(
        activity_id=result.activity_id,
        content=result.content,
        is_cached=result.is_cached,
        updated_at=result.updated_at,
    )


@router.get("/{activity_id}", response_model=AnalysisResponse, responses={401: {"model": AnalysisErrorResponse}})
async def get_cached_analysis(
    activity_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> AnalysisResponse:
    """
    Return the cached analysis for an activity without generating anything.

    Raises:
        HTTPException: 404 if the activity has not been analysed yet
    """
    record = AnalysisCacheHelper.get_cached_analysis(db, user_id, activity_id)
    if not record:
        raise HTTPException(status_code=404, detail="Analysis not found")

    return AnalysisResponse(
        activity_id=activity_id,
        content=record.content,
        is_cached=True,
        updated_at=as_utc(record.updated_at),
    )


@router.delete("/{activity_id}")
async def delete_analysis(
    activity_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> dict:
    """
    Delete the cached analysis for one activity.

    Raises:
        HTTPException: 404 if there was nothing to delete
    """
    if not AnalysisCacheHelper.delete_analysis(db, user_id, activity_id):
        raise HTTPException(status_code=404, detail="Analysis not found")

    return {"status": "success", "message": "Analysis deleted"}


@router.delete("")
async def delete_all_analyses(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> dict:
    """Delete every cached analysis belonging to the caller."""

    deleted = AnalysisCacheHelper.delete_all_for_user(db, user_id)
    return {"status": "success", "deleted": deleted}
