import json
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from fitadvisor.core.domain import AdvisorySuggestionRecord, LogEntry, LogKind, UserProfile
from fitadvisor.core.security import create_access_token
from fitadvisor.db.models import NutritionLog, User, WeightLog, WorkoutLog
from fitadvisor.db.session import SessionLocal, configure_database, create_tables
from fitadvisor.services.llm import GatewayResult, get_advisory_gateway, select_fallback


class FakeScenario(str, Enum):
    OK_TEXT = "OK_TEXT"
    OK_PROGRESS_JSON = "OK_PROGRESS_JSON"
    UNAVAILABLE = "UNAVAILABLE"


PROGRESS_JSON = json.dumps(
    {
        "trends": {"weight": "Stable", "strength": "Improving", "consistency": "Good"},
        "insights": ["You train regularly"],
        "recommendations": ["Add one mobility session", "Track protein intake"],
        "motivation": "Keep going!",
    }
)


class FakeGateway:
    def __init__(self, scenario: FakeScenario = FakeScenario.OK_TEXT) -> None:
        self.scenario = scenario
        self.calls: list[tuple[str, Any]] = []

    def invoke(self, prompt: str, intent: Any = None) -> GatewayResult:
        self.calls.append((prompt, intent))
        if self.scenario == FakeScenario.OK_TEXT:
            return GatewayResult(text="Focus on compound lifts three times this week.")
        if self.scenario == FakeScenario.OK_PROGRESS_JSON:
            return GatewayResult(text=PROGRESS_JSON)
        if self.scenario == FakeScenario.UNAVAILABLE:
            return GatewayResult(text=select_fallback(prompt, intent), fallback_used=True, error="simulated outage")
        raise ValueError("Unknown fake scenario")


class FakeDataAccess:
    """In-memory stand-in for ``SqlDataAccess`` that counts every call."""

    def __init__(self, fail_insert: bool = False) -> None:
        self.profiles: dict[str, UserProfile] = {}
        self.logs: list[LogEntry] = []
        self.suggestions: list[AdvisorySuggestionRecord] = []
        self.fail_insert = fail_insert
        self.calls: dict[str, int] = {"get_profile": 0, "query_logs": 0, "insert_suggestion": 0}

    def add_profile(self, profile: UserProfile) -> UserProfile:
        self.profiles[profile.id] = profile
        return profile

    def add_log(self, user_id: str, kind: LogKind, timestamp: datetime, **values: Any) -> LogEntry:
        entry = LogEntry(id=len(self.logs) + 1, user_id=user_id, kind=kind, timestamp=timestamp, values=values)
        self.logs.append(entry)
        return entry

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        self.calls["get_profile"] += 1
        return self.profiles.get(user_id)

    def query_logs(
        self,
        user_id: str,
        kind: LogKind,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[LogEntry]:
        self.calls["query_logs"] += 1
        return [
            entry
            for entry in self.logs
            if entry.user_id == user_id
            and entry.kind == kind
            and (start is None or entry.timestamp >= start)
            and (end is None or entry.timestamp <= end)
        ]

    def insert_suggestion(self, record: AdvisorySuggestionRecord) -> AdvisorySuggestionRecord:
        self.calls["insert_suggestion"] += 1
        if self.fail_insert:
            raise RuntimeError("database is locked")
        self.suggestions.append(record)
        return record

    def list_suggestions(self, user_id: str) -> list[AdvisorySuggestionRecord]:
        return [item for item in self.suggestions if item.user_id == user_id]


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    db_path = tmp_path_factory.mktemp("db") / "fitadvisor_test.db"
    configure_database(str(db_path))
    create_tables()
    return db_path


@pytest.fixture(scope="session")
def app(test_db_path: Path):
    from fitadvisor.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def client(app):
    app.dependency_overrides = {}
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides = {}


@pytest.fixture
def db_session(test_db_path: Path):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def create_user(db_session: Session) -> Callable[..., User]:
    def _create_user(**overrides: Any) -> User:
        fields: dict[str, Any] = {
            "name": f"user_{uuid4().hex[:8]}",
            "goal": "muscle_gain",
            "experience_level": "intermediate",
            "equipment_csv": "dumbbells,barbell",
            "age": 28,
            "weight": 78.0,
            "initial_weight": 82.0,
            "height": 180.0,
            "activity_level": "moderate",
        }
        fields.update(overrides)
        user = User(**fields)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def seed_weight_logs(db_session: Session):
    def _seed(user_id: str, weights: list[float]) -> list[WeightLog]:
        now = utc_now_naive()
        rows = [
            WeightLog(user_id=user_id, weight=value, timestamp=now - timedelta(days=len(weights) - idx))
            for idx, value in enumerate(weights)
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    return _seed


@pytest.fixture
def seed_workout_logs(db_session: Session):
    def _seed(user_id: str, days_ago: list[int]) -> list[WorkoutLog]:
        now = utc_now_naive()
        rows = [
            WorkoutLog(user_id=user_id, exercise_name="Squat", sets=3, reps=8, timestamp=now - timedelta(days=d))
            for d in days_ago
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    return _seed


@pytest.fixture
def seed_nutrition_logs(db_session: Session):
    def _seed(user_id: str, calories: list[float]) -> list[NutritionLog]:
        now = utc_now_naive()
        rows = [
            NutritionLog(
                user_id=user_id,
                calories=value,
                protein=120,
                carbs=200,
                fat=60,
                timestamp=now - timedelta(days=len(calories) - idx),
            )
            for idx, value in enumerate(calories)
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    return _seed


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


@pytest.fixture
def fake_gateway_factory() -> Callable[[FakeScenario], FakeGateway]:
    def _factory(scenario: FakeScenario) -> FakeGateway:
        return FakeGateway(scenario=scenario)

    return _factory


@pytest.fixture
def override_gateway(app, fake_gateway_factory):
    def _override(scenario: FakeScenario) -> FakeGateway:
        gateway = fake_gateway_factory(scenario)
        app.dependency_overrides[get_advisory_gateway] = lambda: gateway
        return gateway

    return _override


@pytest.fixture
def fake_data_access() -> FakeDataAccess:
    return FakeDataAccess()


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile(
        id="user-1",
        name="Alex",
        goal="weight_loss",
        experience_level="beginner",
        equipment=frozenset({"dumbbells"}),
        age=34,
        weight=90.0,
        height=175.0,
        activity_level="light",
        initial_weight=95.0,
    )
