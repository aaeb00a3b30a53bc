import json
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeDataAccess, FakeGateway, FakeScenario
from fitadvisor.core.domain import AdvisoryIntent, LogKind
from fitadvisor.core.errors import InvalidIntentError, NotFoundError
from fitadvisor.services.advisor import AdvisoryOrchestrator, extract_recommendations
from fitadvisor.services.llm import FALLBACK_ENCOURAGEMENT, FALLBACK_WORKOUT_PLAN

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def test_progress_without_logs_returns_insufficient_data(fake_data_access, profile) -> None:
    fake_data_access.add_profile(profile)
    gateway = FakeGateway(FakeScenario.UNAVAILABLE)
    orchestrator = AdvisoryOrchestrator(fake_data_access, gateway)

    result = orchestrator.get_advice(profile.id, "progress_analysis", {"time_range": "30_days"}, now=NOW)

    assert result.supporting_data["trend"]["direction"] == "insufficient_data"
    assert result.supporting_data["time_range"] == "30_days"
    assert result.recommendation == FALLBACK_ENCOURAGEMENT
    assert result.fallback_used is True
    assert result.persisted is True
    assert len(fake_data_access.suggestions) == 1
    assert fake_data_access.suggestions[0].fallback_used is True


def test_unknown_user_fails_before_any_side_effect(fake_data_access) -> None:
    gateway = FakeGateway(FakeScenario.OK_TEXT)
    orchestrator = AdvisoryOrchestrator(fake_data_access, gateway)

    with pytest.raises(NotFoundError):
        orchestrator.get_advice("ghost", AdvisoryIntent.workout)

    assert gateway.calls == []
    assert fake_data_access.calls["query_logs"] == 0
    assert fake_data_access.calls["insert_suggestion"] == 0


def test_persist_failure_does_not_change_result(profile) -> None:
    healthy = FakeDataAccess()
    broken = FakeDataAccess(fail_insert=True)
    for data_access in (healthy, broken):
        data_access.add_profile(profile)

    ok = AdvisoryOrchestrator(healthy, FakeGateway()).get_advice(profile.id, "workout", now=NOW)
    degraded = AdvisoryOrchestrator(broken, FakeGateway()).get_advice(profile.id, "workout", now=NOW)

    assert broken.calls["insert_suggestion"] == 1
    assert degraded.persisted is False
    assert degraded.recommendation == ok.recommendation
    assert degraded.supporting_data == ok.supporting_data


def test_invalid_intent_is_rejected(fake_data_access, profile) -> None:
    fake_data_access.add_profile(profile)
    gateway = FakeGateway()
    with pytest.raises(InvalidIntentError):
        AdvisoryOrchestrator(fake_data_access, gateway).get_advice(profile.id, "meditation")
    assert gateway.calls == []


def test_progress_uses_logs_within_range(fake_data_access, profile) -> None:
    fake_data_access.add_profile(profile)
    for idx, weight in enumerate([92.0, 91.0, 90.0, 89.0]):
        fake_data_access.add_log(profile.id, LogKind.weight, NOW - timedelta(days=4 - idx), weight=weight)
    fake_data_access.add_log(profile.id, LogKind.weight, NOW - timedelta(days=60), weight=120.0)
    for days_ago in (1, 2, 3, 6):
        fake_data_access.add_log(profile.id, LogKind.workout, NOW - timedelta(days=days_ago), exercise_name="Row")
    gateway = FakeGateway(FakeScenario.OK_PROGRESS_JSON)

    result = AdvisoryOrchestrator(fake_data_access, gateway).get_advice(
        profile.id, AdvisoryIntent.progress_analysis, {"time_range": "30_days"}, now=NOW
    )

    data = result.supporting_data
    assert data["trend"]["direction"] == "decreasing"
    assert data["trend"]["sample_size"] == 4
    assert data["workout_streak_days"] == 3
    assert data["data_points"] == {"weight": 4, "workouts": 4, "nutrition": 0}
    assert data["recommendations"] == ["Add one mobility session", "Track protein intake"]
    assert data["profile_echo"]["goal"] == "weight_loss"

    prompt, intent = gateway.calls[0]
    assert intent == AdvisoryIntent.progress_analysis
    assert '"workout_streak_days": 3' in prompt
    assert "120.0" not in prompt


def test_nutrition_without_logs_uses_default_intake(fake_data_access, profile) -> None:
    fake_data_access.add_profile(profile)
    result = AdvisoryOrchestrator(fake_data_access, FakeGateway()).get_advice(
        profile.id, "nutrition", {"target_weight": 80}, now=NOW
    )
    data = result.supporting_data
    assert data["time_range"] == "all"
    assert data["intake_averages"]["average_calories"] == 2000
    assert data["nutrition_goals"]["daily_calories"] > 0
    stored = fake_data_access.suggestions[0]
    assert stored.context["intent"] == "nutrition"
    assert stored.context["target_weight"] == 80


def test_workout_fallback_is_a_plan(fake_data_access, profile) -> None:
    fake_data_access.add_profile(profile)
    result = AdvisoryOrchestrator(fake_data_access, FakeGateway(FakeScenario.UNAVAILABLE)).get_advice(
        profile.id, "workout", now=NOW
    )
    assert result.recommendation == FALLBACK_WORKOUT_PLAN
    assert json.loads(result.recommendation)["weekPlan"]


def test_suggestion_stats_counts_by_intent(fake_data_access, profile) -> None:
    fake_data_access.add_profile(profile)
    orchestrator = AdvisoryOrchestrator(fake_data_access, FakeGateway())
    for intent in ("workout", "workout", "motivation"):
        orchestrator.get_advice(profile.id, intent, now=NOW)

    stats = orchestrator.suggestion_stats(profile.id)
    assert stats["total_suggestions"] == 3
    assert stats["by_intent"] == {"workout": 2, "motivation": 1}
    assert len(stats["recent_suggestions"]) == 3
    with pytest.raises(NotFoundError):
        orchestrator.suggestion_stats("ghost")


def test_extract_recommendations_from_plain_text() -> None:
    text = "Keep training every week. Sleep at least seven hours! Ok."
    assert extract_recommendations(text) == ["Keep training every week", "Sleep at least seven hours"]


def test_workout_history_is_bounded_and_newest_first(fake_data_access, profile) -> None:
    fake_data_access.add_profile(profile)
    for days_ago in range(1, 16):
        fake_data_access.add_log(
            profile.id, LogKind.workout, NOW - timedelta(days=days_ago), exercise_name=f"Day {days_ago}"
        )
    gateway = FakeGateway()

    result = AdvisoryOrchestrator(fake_data_access, gateway).get_advice(profile.id, "workout", now=NOW)

    stored = fake_data_access.suggestions[0].context
    assert len(stored["recent_workouts"]) == 10
    assert stored["recent_workouts"][0] == {"date": "2024-06-14", "exercise_name": "Day 1"}
    assert stored["focus"] == "weight_loss"
    assert stored["equipment"] == ["dumbbells"]
    assert result.supporting_data["data_points"] == {"workouts": 15}
