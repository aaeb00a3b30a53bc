import json
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from fastapi import Depends
from sqlalchemy.orm import Session

from fitadvisor.core.domain import AdvisorySuggestionRecord, LogEntry, LogKind, UserProfile
from fitadvisor.db.models import AdvisorySuggestion, NutritionLog, User, WeightLog, WorkoutLog
from fitadvisor.db.session import get_db

LOG_MODELS = {
    LogKind.weight: (WeightLog, ("weight", "body_fat")),
    LogKind.workout: (
        WorkoutLog,
        ("exercise_name", "sets", "reps", "weight_lifted", "duration", "feedback"),
    ),
    LogKind.nutrition: (NutritionLog, ("calories", "protein", "carbs", "fat", "water")),
}


class DataAccess(Protocol):
    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        ...

    def query_logs(
        self,
        user_id: str,
        kind: LogKind,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[LogEntry]:
        ...

    def insert_suggestion(self, record: AdvisorySuggestionRecord) -> AdvisorySuggestionRecord:
        ...

    def list_suggestions(self, user_id: str) -> list[AdvisorySuggestionRecord]:
        ...


def to_naive_utc(value: datetime) -> datetime:
    # SQLite DateTime columns hold naive UTC.
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_equipment(raw: Optional[str]) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


def _profile_from_row(row: User) -> UserProfile:
    return UserProfile(
        id=row.id,
        name=row.name,
        goal=row.goal,
        experience_level=row.experience_level,
        equipment=parse_equipment(row.equipment_csv),
        age=row.age,
        weight=row.weight,
        height=row.height,
        activity_level=row.activity_level,
        initial_weight=row.initial_weight,
    )


def _suggestion_from_row(row: AdvisorySuggestion) -> AdvisorySuggestionRecord:
    context: dict[str, Any] = {}
    if row.context_json:
        try:
            loaded = json.loads(row.context_json)
            if isinstance(loaded, dict):
                context = loaded
        except json.JSONDecodeError:
            context = {}
    return AdvisorySuggestionRecord(
        id=row.id,
        user_id=row.user_id,
        intent=row.intent,
        prompt_text=row.prompt_text,
        response_text=row.response_text,
        context=context,
        fallback_used=bool(row.fallback_used),
        created_at=row.created_at,
    )


class SqlDataAccess:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        row = self.db.query(User).filter(User.id == str(user_id)).first()
        if not row:
            return None
        return _profile_from_row(row)

    def query_logs(
        self,
        user_id: str,
        kind: LogKind,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[LogEntry]:
        model, value_fields = LOG_MODELS[LogKind(kind)]
        query = self.db.query(model).filter(model.user_id == str(user_id))
        if start is not None:
            query = query.filter(model.timestamp >= to_naive_utc(start))
        if end is not None:
            query = query.filter(model.timestamp <= to_naive_utc(end))
        rows = query.order_by(model.timestamp.asc()).all()
        return [
            LogEntry(
                id=row.id,
                user_id=row.user_id,
                kind=LogKind(kind),
                timestamp=row.timestamp,
                values={name: getattr(row, name) for name in value_fields},
            )
            for row in rows
        ]

    def insert_suggestion(self, record: AdvisorySuggestionRecord) -> AdvisorySuggestionRecord:
        row = AdvisorySuggestion(
            user_id=record.user_id,
            intent=record.intent,
            prompt_text=record.prompt_text,
            response_text=record.response_text,
            context_json=json.dumps(record.context, separators=(",", ":"), default=str),
            fallback_used=record.fallback_used,
            created_at=to_naive_utc(record.created_at or datetime.now(timezone.utc)),
        )
        self.db.add(row)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(row)
        return _suggestion_from_row(row)

    def list_suggestions(self, user_id: str) -> list[AdvisorySuggestionRecord]:
        rows = (
            self.db.query(AdvisorySuggestion)
            .filter(AdvisorySuggestion.user_id == str(user_id))
            .order_by(AdvisorySuggestion.created_at.asc(), AdvisorySuggestion.id.asc())
            .all()
        )
        return [_suggestion_from_row(row) for row in rows]


def get_data_access(db: Session = Depends(get_db)) -> DataAccess:
    return SqlDataAccess(db)
