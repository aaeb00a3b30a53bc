import logging
import re
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from fastapi import Depends

from fitadvisor.core.domain import (
    AdvisoryIntent,
    AdvisorySuggestionRecord,
    LogEntry,
    LogKind,
    TimeRange,
    UserProfile,
    parse_intent,
    parse_time_range,
    range_start,
)
from fitadvisor.core.errors import NotFoundError
from fitadvisor.core.nutrition import DEFAULT_INTAKE_AVERAGES, calculate_nutrition_goals
from fitadvisor.core.prompts import AdvisoryContext, build_prompt, context_for
from fitadvisor.core.trends import (
    Sample,
    average,
    calorie_adequacy,
    compute_trend,
    longest_streak,
    weekly_frequency,
)
from fitadvisor.services.data_access import DataAccess, get_data_access
from fitadvisor.services.llm import AdvisoryGateway, get_advisory_gateway, parse_llm_json

logger = logging.getLogger("uvicorn.error")

RECENT_WEIGHTS_IN_PROMPT = 10
RECENT_WORKOUTS_IN_PROMPT = 10
RECENT_SUGGESTIONS_IN_STATS = 10

DEFAULT_PLAN_DURATION = "4_weeks"
DEFAULT_ACTIVITY_LEVEL = "moderate"

DEFAULT_TIME_RANGES = {
    AdvisoryIntent.progress_analysis: TimeRange.last_30_days,
    AdvisoryIntent.nutrition: TimeRange.all,
}


@dataclass(frozen=True)
class PersistOutcome:
    saved: bool
    suggestion_id: Optional[int] = None
    error: Optional[str] = None


@dataclass
class AdviceResult:
    intent: AdvisoryIntent
    recommendation: str
    supporting_data: dict[str, Any] = field(default_factory=dict)
    fallback_used: bool = False
    persisted: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _context_dict(context: Any) -> dict[str, Any]:
    if context is None:
        return {}
    if isinstance(context, Mapping):
        return dict(context)
    if is_dataclass(context):
        return asdict(context)
    return {}


def extract_recommendations(response_text: str) -> list[str]:
    try:
        parsed = parse_llm_json(response_text)
    except ValueError:
        sentences = [s.strip() for s in re.split(r"[.!?]+", response_text or "") if len(s.strip()) > 10]
        return sentences[:3]
    items = parsed.get("recommendations") or parsed.get("tips") or []
    if not isinstance(items, list):
        return []
    return [str(item) for item in items]


def _samples(entries: list[LogEntry], name: str) -> list[Sample]:
    return [Sample(entry.timestamp, entry.get(name)) for entry in entries]


def _rounded_average(entries: list[LogEntry], name: str) -> Optional[int]:
    value = average(entry.get(name) for entry in entries)
    return round(value) if value is not None else None


class AdvisoryOrchestrator:
    def __init__(self, data_access: DataAccess, gateway: AdvisoryGateway) -> None:
        self.data_access = data_access
        self.gateway = gateway

    def get_advice(
        self,
        user_id: str,
        intent: Union[AdvisoryIntent, str],
        context: Optional[Union[AdvisoryContext, Mapping[str, Any]]] = None,
        now: Optional[datetime] = None,
    ) -> AdviceResult:
        resolved = parse_intent(intent)
        profile = self.data_access.get_profile(user_id)
        if profile is None:
            raise NotFoundError(user_id)

        timestamp = now or datetime.now(timezone.utc)
        caller_context = _context_dict(context)
        computed, supporting_data = self._gather(profile, resolved, caller_context, timestamp)
        typed_context = context_for(resolved, {**caller_context, **computed})

        prompt = build_prompt(resolved, profile, typed_context)
        outcome = self.gateway.invoke(prompt, resolved)

        persisted = self._persist(
            AdvisorySuggestionRecord(
                user_id=profile.id,
                intent=resolved.value,
                prompt_text=prompt,
                response_text=outcome.text,
                context={"intent": resolved.value, **asdict(typed_context)},
                fallback_used=outcome.fallback_used,
                created_at=timestamp,
            )
        )

        supporting_data["profile_echo"] = profile.echo()
        if resolved == AdvisoryIntent.progress_analysis:
            supporting_data["recommendations"] = extract_recommendations(outcome.text)

        logger.info(
            "advisory_generated user_id=%s intent=%s fallback=%s persisted=%s",
            profile.id,
            resolved.value,
            outcome.fallback_used,
            persisted.saved,
        )
        return AdviceResult(
            intent=resolved,
            recommendation=outcome.text,
            supporting_data=supporting_data,
            fallback_used=outcome.fallback_used,
            persisted=persisted.saved,
            created_at=timestamp,
        )

    def _gather(
        self,
        profile: UserProfile,
        intent: AdvisoryIntent,
        caller_context: dict[str, Any],
        now: datetime,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        if intent == AdvisoryIntent.workout:
            return self._gather_workout(profile, caller_context, now)
        if intent == AdvisoryIntent.progress_analysis:
            return self._gather_progress(profile, caller_context, now)
        if intent == AdvisoryIntent.nutrition:
            return self._gather_nutrition(profile, caller_context, now)
        return {}, {}

    def _gather_workout(
        self, profile: UserProfile, caller_context: dict[str, Any], now: datetime
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        workouts = self.data_access.query_logs(profile.id, LogKind.workout, end=now)
        newest_first = sorted(workouts, key=lambda e: e.timestamp, reverse=True)[:RECENT_WORKOUTS_IN_PROMPT]
        recent_workouts = [
            {
                "date": entry.timestamp.date().isoformat(),
                **{name: value for name, value in entry.values.items() if value is not None},
            }
            for entry in newest_first
        ]
        focus = caller_context.get("focus") or profile.goal
        computed = {
            "duration": caller_context.get("duration") or DEFAULT_PLAN_DURATION,
            "focus": focus,
            "equipment": caller_context.get("equipment") or sorted(profile.equipment) or None,
            "recent_workouts": recent_workouts,
        }
        supporting = {"focus": focus, "data_points": {"workouts": len(workouts)}}
        return computed, supporting

    def _gather_progress(
        self, profile: UserProfile, caller_context: dict[str, Any], now: datetime
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        time_range = parse_time_range(
            caller_context.get("time_range"), DEFAULT_TIME_RANGES[AdvisoryIntent.progress_analysis]
        )
        start = range_start(time_range, now)
        weights = self.data_access.query_logs(profile.id, LogKind.weight, start=start, end=now)
        workouts = self.data_access.query_logs(profile.id, LogKind.workout, start=start, end=now)
        meals = self.data_access.query_logs(profile.id, LogKind.nutrition, start=start, end=now)

        weight_trend = compute_trend(_samples(weights, "weight")).as_dict()
        streak = longest_streak((entry.timestamp, True) for entry in workouts)
        frequency = weekly_frequency(entry.timestamp for entry in workouts)
        calories = calorie_adequacy(entry.get("calories") for entry in meals)
        recent_weights = [
            {"date": entry.timestamp.date().isoformat(), "weight": entry.get("weight")}
            for entry in sorted(weights, key=lambda e: e.timestamp)
            if entry.get("weight") is not None
        ][-RECENT_WEIGHTS_IN_PROMPT:]

        computed = {
            "time_range": time_range.value,
            "weight_trend": weight_trend,
            "recent_weights": recent_weights,
            "workout_streak_days": streak,
            "workout_frequency": frequency,
            "calorie_trend": calories,
        }
        supporting = {
            "time_range": time_range.value,
            "trend": weight_trend,
            "workout_streak_days": streak,
            "workout_frequency": frequency,
            "calorie_trend": calories,
            "data_points": {"weight": len(weights), "workouts": len(workouts), "nutrition": len(meals)},
        }
        return computed, supporting

    def _gather_nutrition(
        self, profile: UserProfile, caller_context: dict[str, Any], now: datetime
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        time_range = parse_time_range(
            caller_context.get("time_range"), DEFAULT_TIME_RANGES[AdvisoryIntent.nutrition]
        )
        start = range_start(time_range, now)
        meals = self.data_access.query_logs(profile.id, LogKind.nutrition, start=start, end=now)

        calorie_trend = compute_trend(_samples(meals, "calories")).as_dict()
        if meals:
            intake = {
                "average_calories": _rounded_average(meals, "calories"),
                "average_protein": _rounded_average(meals, "protein"),
                "average_carbs": _rounded_average(meals, "carbs"),
                "average_fat": _rounded_average(meals, "fat"),
            }
        else:
            intake = dict(DEFAULT_INTAKE_AVERAGES)

        computed = {
            "time_range": time_range.value,
            "current_weight": caller_context.get("current_weight") or profile.weight,
            "goal": profile.goal,
            "activity_level": caller_context.get("activity_level") or profile.activity_level or DEFAULT_ACTIVITY_LEVEL,
            "intake_averages": intake,
            "calorie_trend": calorie_trend,
        }
        supporting = {
            "time_range": time_range.value,
            "trend": calorie_trend,
            "intake_averages": intake,
            "nutrition_goals": calculate_nutrition_goals(profile),
            "data_points": {"nutrition": len(meals)},
        }
        return computed, supporting

    def _persist(self, record: AdvisorySuggestionRecord) -> PersistOutcome:
        try:
            saved = self.data_access.insert_suggestion(record)
        except Exception as exc:
            logger.exception(
                "advisory_persist_error user_id=%s intent=%s detail=%s", record.user_id, record.intent, str(exc)
            )
            return PersistOutcome(saved=False, error=str(exc))
        return PersistOutcome(saved=True, suggestion_id=getattr(saved, "id", None))

    def suggestion_stats(self, user_id: str) -> dict[str, Any]:
        if self.data_access.get_profile(user_id) is None:
            raise NotFoundError(user_id)
        suggestions = self.data_access.list_suggestions(user_id)
        by_intent: dict[str, int] = {}
        for item in suggestions:
            by_intent[item.intent] = by_intent.get(item.intent, 0) + 1
        recent = [
            {
                "id": item.id,
                "intent": item.intent,
                "response_text": item.response_text,
                "fallback_used": item.fallback_used,
                "created_at": item.created_at.isoformat() if item.created_at else None,
            }
            for item in suggestions[-RECENT_SUGGESTIONS_IN_STATS:]
        ]
        return {"total_suggestions": len(suggestions), "by_intent": by_intent, "recent_suggestions": recent}


def get_advisory_orchestrator(
    data_access: DataAccess = Depends(get_data_access),
    gateway: AdvisoryGateway = Depends(get_advisory_gateway),
) -> AdvisoryOrchestrator:
    return AdvisoryOrchestrator(data_access=data_access, gateway=gateway)
