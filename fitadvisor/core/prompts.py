from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from typing import Any, Mapping, Optional, Union

from fitadvisor.core.domain import AdvisoryIntent, UserProfile

NOT_SPECIFIED = "not specified"
MOTIVATION_MAX_WORDS = 200

WORKOUT_SCHEMA = """{
  "weekPlan": [
    {
      "day": "Monday",
      "focus": "Upper body",
      "exercises": [
        {
          "name": "Exercise name",
          "sets": 3,
          "reps": "10-12",
          "rest": "60s",
          "equipment": "dumbbells",
          "alternative": "Bodyweight alternative"
        }
      ]
    }
  ],
  "tips": ["Tip 1", "Tip 2"],
  "progression": "How to progress over the next weeks"
}"""

NUTRITION_SCHEMA = """{
  "dailyCalories": 2000,
  "macros": {
    "protein": "150g (30%)",
    "carbs": "200g (40%)",
    "fat": "67g (30%)"
  },
  "mealSuggestions": [
    {
      "meal": "Breakfast",
      "foods": ["Oats", "Banana", "Eggs"],
      "calories": 400
    }
  ],
  "tips": ["Tip 1", "Tip 2"],
  "hydration": "Hydration recommendation"
}"""

PROGRESS_SCHEMA = """{
  "trends": {
    "weight": "Description of the weight trend",
    "strength": "Description of the strength trend",
    "consistency": "Description of training consistency"
  },
  "insights": ["Insight 1", "Insight 2"],
  "recommendations": ["Recommendation 1", "Recommendation 2"],
  "motivation": "Personalized motivational message"
}"""


@dataclass(frozen=True)
class WorkoutContext:
    duration: Optional[str] = None
    focus: Optional[str] = None
    equipment: Optional[list[str]] = None
    notes: Optional[str] = None
    recent_workouts: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class NutritionContext:
    goal: Optional[str] = None
    current_weight: Optional[float] = None
    target_weight: Optional[float] = None
    activity_level: Optional[str] = None
    time_range: Optional[str] = None
    intake_averages: dict[str, Any] = field(default_factory=dict)
    calorie_trend: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProgressContext:
    time_range: Optional[str] = None
    weight_trend: dict[str, Any] = field(default_factory=dict)
    recent_weights: list[dict[str, Any]] = field(default_factory=list)
    workout_streak_days: Optional[int] = None
    workout_frequency: dict[str, Any] = field(default_factory=dict)
    calorie_trend: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MotivationContext:
    consecutive_days: Optional[int] = None
    last_workout: Optional[str] = None
    type: Optional[str] = None


AdvisoryContext = Union[WorkoutContext, NutritionContext, ProgressContext, MotivationContext]

CONTEXT_TYPES: dict[AdvisoryIntent, type] = {
    AdvisoryIntent.workout: WorkoutContext,
    AdvisoryIntent.nutrition: NutritionContext,
    AdvisoryIntent.progress_analysis: ProgressContext,
    AdvisoryIntent.motivation: MotivationContext,
}


def context_for(intent: AdvisoryIntent, payload: Optional[Mapping[str, Any]] = None) -> AdvisoryContext:
    """Build the intent's context variant from a loose mapping, dropping unknown keys."""
    context_type = CONTEXT_TYPES[AdvisoryIntent(intent)]
    if isinstance(payload, context_type):
        return payload
    if payload is not None and not isinstance(payload, Mapping):
        payload = asdict(payload) if is_dataclass(payload) else {}
    allowed = {f.name for f in fields(context_type)}
    kwargs = {key: value for key, value in (payload or {}).items() if key in allowed and value is not None}
    return context_type(**kwargs)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _display(value: Any, unit: str = "") -> str:
    if _is_missing(value):
        return NOT_SPECIFIED
    return f"{value}{unit}"


def _display_list(values: Any) -> str:
    items = sorted(str(v) for v in (values or []) if not _is_missing(v))
    return ", ".join(items) if items else NOT_SPECIFIED


def _scrub(value: Any) -> Any:
    if _is_missing(value):
        return NOT_SPECIFIED
    if isinstance(value, Mapping):
        return {str(k): _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return [_scrub(v) for v in items]
    if isinstance(value, float) and math.isinf(value):
        return NOT_SPECIFIED
    return value


def serialize_context(context: Any) -> str:
    if context is None:
        data: Any = {}
    elif isinstance(context, Mapping):
        data = dict(context)
    else:
        data = asdict(context)
    return json.dumps(_scrub(data), sort_keys=True, default=str, ensure_ascii=False)


def _workout_prompt(profile: UserProfile, context: Any) -> list[str]:
    return [
        "You are an expert personal trainer. Create a personalized workout recommendation.",
        "",
        "USER DATA:",
        f"- Goal: {_display(profile.goal)}",
        f"- Experience level: {_display(profile.experience_level)}",
        f"- Available equipment: {_display_list(profile.equipment)}",
        f"- Age: {_display(profile.age)}",
        f"- Current weight: {_display(profile.weight, ' kg')}",
        f"- Height: {_display(profile.height, ' cm')}",
        "",
        "ADDITIONAL CONTEXT:",
        serialize_context(context),
        "",
        "INSTRUCTIONS:",
        "1. Build a one-week workout plan.",
        "2. Include specific exercises with sets, reps and rest.",
        "3. Adapt the exercises to the available equipment.",
        "4. Respect the user's experience level.",
        "5. Offer alternatives for exercises that need unavailable equipment.",
        "6. Include technique and safety tips.",
        "",
        "Reply with JSON only, using exactly this structure:",
        WORKOUT_SCHEMA,
    ]


def _nutrition_prompt(profile: UserProfile, context: Any) -> list[str]:
    return [
        "You are an expert sports nutritionist. Create personalized nutrition advice.",
        "",
        "USER DATA:",
        f"- Goal: {_display(profile.goal)}",
        f"- Current weight: {_display(profile.weight, ' kg')}",
        f"- Height: {_display(profile.height, ' cm')}",
        f"- Age: {_display(profile.age)}",
        f"- Activity level: {_display(profile.activity_level)}",
        "",
        "CURRENT NUTRITION DATA:",
        serialize_context(context),
        "",
        "INSTRUCTIONS:",
        "1. Calculate daily calorie needs.",
        "2. Split macronutrients (protein, carbs, fat) in grams and percent.",
        "3. Suggest specific foods.",
        "4. Give meal timing tips.",
        "5. Take the user's goal into account.",
        "",
        "Reply with JSON only, using exactly this structure:",
        NUTRITION_SCHEMA,
    ]


def _progress_prompt(profile: UserProfile, context: Any) -> list[str]:
    return [
        "You are a fitness data analyst. Analyze the user's progress and provide insights.",
        "",
        "USER DATA:",
        f"- Goal: {_display(profile.goal)}",
        f"- Initial weight: {_display(profile.initial_weight, ' kg')}",
        f"- Current weight: {_display(profile.weight, ' kg')}",
        "",
        "PROGRESS DATA:",
        serialize_context(context),
        "",
        "INSTRUCTIONS:",
        "1. Analyze weight, measurement and performance trends.",
        "2. Identify positive patterns and areas to improve.",
        "3. Detect possible plateaus.",
        "4. Suggest adjustments to the training plan.",
        "5. Close with motivation grounded in the progress.",
        "",
        "Reply with JSON only, using exactly this structure:",
        PROGRESS_SCHEMA,
    ]


def _motivation_prompt(profile: UserProfile, context: Any) -> list[str]:
    consecutive_days = getattr(context, "consecutive_days", None)
    last_workout = getattr(context, "last_workout", None)
    return [
        "You are a fitness motivation coach. Write a personalized motivational message.",
        "",
        "USER DATA:",
        f"- Name: {_display(profile.name)}",
        f"- Goal: {_display(profile.goal)}",
        f"- Consecutive training days: {consecutive_days if consecutive_days is not None else 0}",
        f"- Last session: {_display(last_workout)}",
        "",
        "CONTEXT:",
        serialize_context(context),
        "",
        "INSTRUCTIONS:",
        "1. Write a personalized motivational message.",
        "2. Celebrate recent achievements.",
        "3. Put the goal in perspective.",
        "4. Remind the user why they started.",
        "5. Keep a positive, encouraging tone.",
        "",
        f"Reply with a direct motivational message in plain text (at most {MOTIVATION_MAX_WORDS} words).",
    ]


_TEMPLATES = {
    AdvisoryIntent.workout: _workout_prompt,
    AdvisoryIntent.nutrition: _nutrition_prompt,
    AdvisoryIntent.progress_analysis: _progress_prompt,
    AdvisoryIntent.motivation: _motivation_prompt,
}


def build_prompt(
    intent: Union[AdvisoryIntent, str],
    profile: UserProfile,
    context: Optional[Union[AdvisoryContext, Mapping[str, Any]]] = None,
) -> str:
    if not intent:
        raise ValueError("intent is required")
    if profile is None or not getattr(profile, "id", None):
        raise ValueError("profile.id is required")
    resolved = AdvisoryIntent(intent)
    typed_context = context_for(resolved, context)
    return "\n".join(_TEMPLATES[resolved](profile, typed_context)).strip()
