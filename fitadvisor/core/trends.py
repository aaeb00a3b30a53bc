import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, NamedTuple, Optional, Union

TREND_UP_THRESHOLD = 0.1
TREND_DOWN_THRESHOLD = -0.1

WORKOUTS_PER_WEEK_TARGET = 3.0
ADEQUATE_DAILY_CALORIES = 1500.0

INCREASING = "increasing"
DECREASING = "decreasing"
STABLE = "stable"
INSUFFICIENT_DATA = "insufficient_data"

TimestampLike = Union[datetime, date, str]


class Sample(NamedTuple):
    timestamp: TimestampLike
    value: Any


@dataclass(frozen=True)
class TrendSummary:
    direction: str
    magnitude: float
    sample_size: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction,
            "magnitude": self.magnitude,
            "sample_size": self.sample_size,
        }


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _to_date(value: Any) -> Optional[date]:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = _to_datetime(value)
    return parsed.date() if parsed else None


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _ordered_values(series: Iterable[Any]) -> list[float]:
    points: list[tuple[datetime, float]] = []
    for item in series or []:
        try:
            raw_ts, raw_value = item
        except (TypeError, ValueError):
            continue
        ts = _to_datetime(raw_ts)
        number = _to_number(raw_value)
        if ts is None or number is None:
            continue
        points.append((ts, number))
    # Value as tiebreaker keeps equal timestamps independent of input order.
    points.sort()
    return [value for _, value in points]


def ols_slope(values: list[float]) -> float:
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_xx = (n - 1) * n * (2 * n - 1) / 6
    sum_y = sum(values)
    sum_xy = sum(idx * value for idx, value in enumerate(values))
    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def classify_slope(slope: float) -> str:
    if slope > TREND_UP_THRESHOLD:
        return INCREASING
    if slope < TREND_DOWN_THRESHOLD:
        return DECREASING
    return STABLE


def compute_trend(series: Iterable[Any]) -> TrendSummary:
    """Least-squares trend of a time series of ``(timestamp, value)`` points.

    Points are sorted by timestamp first; unusable points (null, NaN, bad
    timestamps) are dropped rather than rejected.
    """
    values = _ordered_values(series)
    if len(values) < 2:
        return TrendSummary(direction=INSUFFICIENT_DATA, magnitude=0.0, sample_size=len(values))
    slope = ols_slope(values)
    return TrendSummary(direction=classify_slope(slope), magnitude=slope, sample_size=len(values))


def longest_streak(days: Iterable[Any]) -> int:
    """Longest run of calendar-consecutive days flagged ``True``."""
    active: set[date] = set()
    for item in days or []:
        try:
            raw_day, happened = item
        except (TypeError, ValueError):
            continue
        if happened is not True:
            continue
        day = _to_date(raw_day)
        if day is not None:
            active.add(day)

    best = 0
    current = 0
    previous: Optional[date] = None
    for day in sorted(active):
        if previous is not None and day - previous == timedelta(days=1):
            current += 1
        else:
            current = 1
        best = max(best, current)
        previous = day
    return best


def average(values: Iterable[Any]) -> Optional[float]:
    numbers = [n for n in (_to_number(v) for v in values or []) if n is not None]
    if not numbers:
        return None
    return sum(numbers) / len(numbers)


def _week_start(day: date) -> date:
    # Weeks start on Sunday.
    return day - timedelta(days=(day.weekday() + 1) % 7)


def weekly_frequency(timestamps: Iterable[Any]) -> dict[str, Any]:
    per_week: dict[date, int] = {}
    for raw in timestamps or []:
        day = _to_date(raw)
        if day is None:
            continue
        key = _week_start(day)
        per_week[key] = per_week.get(key, 0) + 1
    if not per_week:
        return {"trend": "no_workouts", "frequency": 0.0}
    frequency = sum(per_week.values()) / len(per_week)
    return {
        "trend": "consistent" if frequency >= WORKOUTS_PER_WEEK_TARGET else "inconsistent",
        "frequency": round(frequency, 2),
    }


def calorie_adequacy(values: Iterable[Any]) -> dict[str, Any]:
    avg = average(v for v in values or [] if _to_number(v))
    if avg is None:
        return {"trend": "no_data", "average_calories": 0.0}
    return {
        "trend": "adequate" if avg >= ADEQUATE_DAILY_CALORIES else "low",
        "average_calories": round(avg, 1),
    }
