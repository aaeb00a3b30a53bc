from datetime import datetime, timezone
from typing import Any, Optional

from fitadvisor.core.domain import LogKind, TimeRange, parse_time_range, range_start
from fitadvisor.core.trends import (
    WORKOUTS_PER_WEEK_TARGET,
    Sample,
    calorie_adequacy,
    compute_trend,
    longest_streak,
    weekly_frequency,
)
from fitadvisor.services.data_access import DataAccess

NOTABLE_WEIGHT_CHANGE_KG = 2.0

RECOMMENDATIONS = {
    "workout_frequency": "Consider training 3-4 times per week.",
    "low_calories": "Make sure you eat enough calories to keep your energy up.",
    "weight_gain": "If your goal is to lose weight, review your diet and training.",
    "weight_loss": "Great progress! Keep it consistent.",
}


def _weight_change(weights: list[float]) -> Optional[float]:
    if len(weights) < 2:
        return None
    return weights[-1] - weights[0]


def build_progress_analytics(
    data_access: DataAccess,
    user_id: str,
    time_range: Any = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    timestamp = now or datetime.now(timezone.utc)
    resolved = parse_time_range(time_range, TimeRange.all)
    start = range_start(resolved, timestamp)

    weight_logs = data_access.query_logs(user_id, LogKind.weight, start=start, end=timestamp)
    workout_logs = data_access.query_logs(user_id, LogKind.workout, start=start, end=timestamp)
    nutrition_logs = data_access.query_logs(user_id, LogKind.nutrition, start=start, end=timestamp)

    weight_trend = compute_trend(Sample(log.timestamp, log.get("weight")) for log in weight_logs)
    workout_trend = weekly_frequency(log.timestamp for log in workout_logs)
    nutrition_trend = calorie_adequacy(log.get("calories") for log in nutrition_logs)

    insights: list[dict[str, Any]] = []
    ordered_weights = [
        log.get("weight")
        for log in sorted(weight_logs, key=lambda log: log.timestamp)
        if log.get("weight") is not None
    ]
    change = _weight_change(ordered_weights)
    if change is not None and abs(change) > NOTABLE_WEIGHT_CHANGE_KG:
        insights.append(
            {
                "type": "weight_change",
                "message": f"You have {'gained' if change > 0 else 'lost'} {abs(change):.1f} kg in this period.",
                "value": round(change, 2),
            }
        )
    if workout_logs and workout_trend["frequency"] < WORKOUTS_PER_WEEK_TARGET:
        insights.append(
            {
                "type": "workout_frequency",
                "message": "You are training fewer than 3 times per week.",
                "value": workout_trend["frequency"],
            }
        )
    if nutrition_trend["trend"] == "low":
        insights.append(
            {
                "type": "low_calories",
                "message": "Your average calorie intake is low.",
                "value": nutrition_trend["average_calories"],
            }
        )

    recommendations: list[str] = []
    for insight in insights:
        if insight["type"] == "weight_change":
            key = "weight_gain" if insight["value"] > 0 else "weight_loss"
        else:
            key = insight["type"]
        recommendations.append(RECOMMENDATIONS[key])

    return {
        "time_range": resolved.value,
        "trends": {
            "weight": weight_trend.as_dict(),
            "workouts": {
                **workout_trend,
                "longest_streak_days": longest_streak((log.timestamp, True) for log in workout_logs),
            },
            "nutrition": nutrition_trend,
        },
        "insights": insights,
        "recommendations": recommendations,
        "data_points": {
            "weight": len(weight_logs),
            "workouts": len(workout_logs),
            "nutrition": len(nutrition_logs),
        },
    }
