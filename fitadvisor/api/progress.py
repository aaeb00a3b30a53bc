from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from fitadvisor.api.auth import get_current_user_id
from fitadvisor.core.domain import TimeRange
from fitadvisor.core.nutrition import calculate_nutrition_goals
from fitadvisor.services.analytics import build_progress_analytics
from fitadvisor.services.data_access import DataAccess, get_data_access

router = APIRouter(tags=["progress"])


def _require_profile(data_access: DataAccess, user_id: str):
    profile = data_access.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return profile


@router.get("/progress/analytics")
def get_progress_analytics(
    time_range: TimeRange = Query(default=TimeRange.all),
    user_id: str = Depends(get_current_user_id),
    data_access: DataAccess = Depends(get_data_access),
) -> dict[str, Any]:
    profile = _require_profile(data_access, user_id)
    return build_progress_analytics(data_access, profile.id, time_range)


@router.get("/nutrition/goals")
def get_nutrition_goals(
    user_id: str = Depends(get_current_user_id),
    data_access: DataAccess = Depends(get_data_access),
) -> dict[str, Any]:
    profile = _require_profile(data_access, user_id)
    return {"goal": profile.goal, **calculate_nutrition_goals(profile)}
