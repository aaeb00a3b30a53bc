import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from fitadvisor.api.auth import get_current_user_id
from fitadvisor.core.domain import AdvisoryIntent, TimeRange
from fitadvisor.core.errors import InvalidIntentError, NotFoundError
from fitadvisor.services.advisor import AdviceResult, AdvisoryOrchestrator, get_advisory_orchestrator

router = APIRouter(prefix="/ai", tags=["ai"])
logger = logging.getLogger("uvicorn.error")


class RecommendationRequest(BaseModel):
    type: str = Field(min_length=1, max_length=32)
    context: dict[str, Any] = Field(default_factory=dict)


class WorkoutPlanRequest(BaseModel):
    duration: Optional[str] = Field(default=None, max_length=32)
    focus: Optional[str] = Field(default=None, max_length=64)
    equipment: Optional[list[str]] = None


class NutritionAdviceRequest(BaseModel):
    current_weight: Optional[float] = Field(default=None, gt=0, le=500)
    target_weight: Optional[float] = Field(default=None, gt=0, le=500)
    activity_level: Optional[str] = Field(default=None, max_length=32)


class ProgressAnalysisRequest(BaseModel):
    time_range: TimeRange = TimeRange.last_30_days


class AdviceResponse(BaseModel):
    type: str
    recommendation: str
    supporting_data: dict[str, Any]
    fallback_used: bool
    timestamp: datetime


class SuggestionStatsResponse(BaseModel):
    total_suggestions: int
    by_intent: dict[str, int]
    recent_suggestions: list[dict[str, Any]]


def _to_response(result: AdviceResult) -> AdviceResponse:
    return AdviceResponse(
        type=result.intent.value,
        recommendation=result.recommendation,
        supporting_data=result.supporting_data,
        fallback_used=result.fallback_used,
        timestamp=result.created_at,
    )


def _advise(
    orchestrator: AdvisoryOrchestrator, user_id: str, intent: Any, context: dict[str, Any]
) -> AdviceResponse:
    try:
        result = orchestrator.get_advice(user_id, intent, context)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from exc
    except InvalidIntentError as exc:
        raise HTTPException(status_code=422, detail="Invalid recommendation type") from exc
    logger.info("ai_recommendation_served user_id=%s type=%s", user_id, result.intent.value)
    return _to_response(result)


@router.post("/recommendations", response_model=AdviceResponse, status_code=status.HTTP_200_OK)
def get_recommendations(
    payload: RecommendationRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdvisoryOrchestrator = Depends(get_advisory_orchestrator),
) -> AdviceResponse:
    return _advise(orchestrator, user_id, payload.type, payload.context)


@router.post("/workout-plan", response_model=AdviceResponse, status_code=status.HTTP_200_OK)
def generate_workout_plan(
    payload: WorkoutPlanRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdvisoryOrchestrator = Depends(get_advisory_orchestrator),
) -> AdviceResponse:
    context = {
        "duration": payload.duration,
        "focus": payload.focus,
        "equipment": payload.equipment,
    }
    return _advise(orchestrator, user_id, AdvisoryIntent.workout, context)


@router.post("/nutrition-advice", response_model=AdviceResponse, status_code=status.HTTP_200_OK)
def get_nutrition_advice(
    payload: NutritionAdviceRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdvisoryOrchestrator = Depends(get_advisory_orchestrator),
) -> AdviceResponse:
    return _advise(orchestrator, user_id, AdvisoryIntent.nutrition, payload.model_dump())


@router.post("/analyze-progress", response_model=AdviceResponse, status_code=status.HTTP_200_OK)
def analyze_progress(
    payload: ProgressAnalysisRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdvisoryOrchestrator = Depends(get_advisory_orchestrator),
) -> AdviceResponse:
    context = {"time_range": payload.time_range.value}
    return _advise(orchestrator, user_id, AdvisoryIntent.progress_analysis, context)


@router.get("/stats", response_model=SuggestionStatsResponse)
def get_ai_stats(
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdvisoryOrchestrator = Depends(get_advisory_orchestrator),
) -> SuggestionStatsResponse:
    try:
        stats = orchestrator.suggestion_stats(user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from exc
    return SuggestionStatsResponse(**stats)
