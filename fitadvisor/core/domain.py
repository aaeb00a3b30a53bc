from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from fitadvisor.core.errors import InvalidIntentError


class AdvisoryIntent(str, Enum):
    workout = "workout"
    nutrition = "nutrition"
    progress_analysis = "progress_analysis"
    motivation = "motivation"


class FitnessGoal(str, Enum):
    weight_loss = "weight_loss"
    muscle_gain = "muscle_gain"
    strength = "strength"
    tone = "tone"
    recomposition = "recomposition"
    endurance = "endurance"
    general_fitness = "general_fitness"


class ExperienceLevel(str, Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"


class LogKind(str, Enum):
    weight = "weight"
    workout = "workout"
    nutrition = "nutrition"


class TimeRange(str, Enum):
    last_7_days = "7_days"
    last_30_days = "30_days"
    last_90_days = "90_days"
    all = "all"


TIME_RANGE_DAYS: dict[TimeRange, Optional[int]] = {
    TimeRange.last_7_days: 7,
    TimeRange.last_30_days: 30,
    TimeRange.last_90_days: 90,
    TimeRange.all: None,
}


def parse_intent(value: Any) -> AdvisoryIntent:
    if isinstance(value, AdvisoryIntent):
        return value
    try:
        return AdvisoryIntent(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidIntentError(value) from exc


def parse_time_range(value: Any, default: TimeRange = TimeRange.last_30_days) -> TimeRange:
    if value is None:
        return default
    if isinstance(value, TimeRange):
        return value
    try:
        return TimeRange(str(value).strip().lower())
    except ValueError:
        return TimeRange.last_30_days


def range_start(time_range: TimeRange, now: datetime) -> Optional[datetime]:
    days = TIME_RANGE_DAYS[time_range]
    if days is None:
        return None
    return now - timedelta(days=days)


@dataclass(frozen=True)
class UserProfile:
    id: str
    name: Optional[str] = None
    goal: str = FitnessGoal.general_fitness.value
    experience_level: str = ExperienceLevel.beginner.value
    equipment: frozenset[str] = frozenset()
    age: Optional[int] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    activity_level: Optional[str] = None
    initial_weight: Optional[float] = None

    def echo(self) -> dict[str, Any]:
        return {
            "goal": self.goal,
            "experience_level": self.experience_level,
            "equipment": sorted(self.equipment),
            "current_weight": self.weight,
            "activity_level": self.activity_level,
        }


@dataclass(frozen=True)
class LogEntry:
    id: int
    user_id: str
    kind: LogKind
    timestamp: datetime
    values: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str) -> Any:
        return self.values.get(name)


@dataclass(frozen=True)
class AdvisorySuggestionRecord:
    user_id: str
    intent: str
    prompt_text: str
    response_text: str
    context: dict[str, Any] = field(default_factory=dict)
    fallback_used: bool = False
    created_at: Optional[datetime] = None
    id: Optional[int] = None
