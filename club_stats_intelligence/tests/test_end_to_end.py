"""
End-to-end tests for ClubStatsIntelligence.
Questions go through the full pipeline against a mocked store or the
bundled fallback dataset.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pandas as pd
import pytest

from club_stats_intelligence.config.club_entities import ConfidenceTier, IntentKind, QuestionContext, StatRecord
from club_stats_intelligence.config.settings import ConfigurationError, EngineSettings
from club_stats_intelligence.main import ClubStatsIntelligence
from club_stats_intelligence.src.database import (
    DEFAULT_FALLBACK_PATH,
    StaticRosterProvider,
    StatsStore,
    StoreResponse,
)

PLAYERS = ["Luke Bangs", "Oli Goddard", "Jonny Sourris"]


def mock_store(rows):
    store = AsyncMock(spec=StatsStore)
    store.run_query.return_value = StoreResponse([StatRecord(r) for r in rows], source="supabase")
    return store


@pytest.fixture
def offline_engine(today):
    """Engine without credentials: answers from the fallback dataset."""
    return ClubStatsIntelligence(EngineSettings(), today=today)


def engine_with(store, today, **settings):
    return ClubStatsIntelligence(
        EngineSettings(**settings),
        store=store,
        roster_provider=StaticRosterProvider(PLAYERS),
        today=today,
    )


@pytest.mark.asyncio
async def test_player_goals_question(today):
    engine = engine_with(mock_store([{"name": "Luke Bangs", "all_goals": 29}]), today)

    answer = await engine.process_question(QuestionContext("How many goals has Luke Bangs scored?"))

    assert "29 goals" in answer.answer
    assert answer.confidence == ConfidenceTier.HIGH


@pytest.mark.asyncio
async def test_penalty_conversion_question(today):
    engine = engine_with(mock_store([
        {"name": "Jonny Sourris", "penalties_scored": 3, "penalties_missed": 1},
    ]), today)

    answer = await engine.process_question(QuestionContext("What is Jonny Sourris's penalty conversion rate?"))

    assert "75%" in answer.answer


@pytest.mark.asyncio
async def test_ambiguous_points_question(today):
    engine = engine_with(mock_store([{"name": "Oli Goddard", "fantasy_points": 140}]), today)

    answer = await engine.process_question(QuestionContext("How many points has Oli Goddard got?"))

    assert "fantasy points" in answer.answer
    assert answer.confidence == ConfidenceTier.MEDIUM


@pytest.mark.asyncio
async def test_unknown_player(today):
    engine = engine_with(mock_store([]), today)

    answer = await engine.process_question(QuestionContext("How many goals has Joe Bloggs scored?"))

    assert answer.confidence == ConfidenceTier.LOW
    for term in ("database", "supabase", "query", "sql"):
        assert term not in answer.answer.lower()


@pytest.mark.asyncio
async def test_slow_store_falls_back_to_dataset(today):
    async def never_answers(query, params):
        await asyncio.sleep(10)
        return StoreResponse()

    store = AsyncMock(spec=StatsStore)
    store.run_query.side_effect = never_answers
    engine = engine_with(store, today, store_timeout_seconds=0.01, store_retry_backoff_seconds=0.0)

    outcome = await engine.answer_question(QuestionContext("How many goals has Luke Bangs scored?"))

    assert "10 goals" in outcome.answer.answer
    assert "most recent club records" in outcome.answer.answer
    assert outcome.answer.confidence == ConfidenceTier.MEDIUM
    assert outcome.details.used_fallback
    assert outcome.details.notes


@pytest.mark.asyncio
async def test_answers_are_deterministic(today):
    engine = engine_with(mock_store([{"name": "Luke Bangs", "assists": 5}]), today)
    context = QuestionContext("How many assists has Luke Bangs got?")

    first = await engine.process_question(context)
    second = await engine.process_question(context)

    assert first.to_dict() == second.to_dict()


@pytest.mark.asyncio
async def test_offline_top_scorer(offline_engine):
    frame = pd.read_csv(DEFAULT_FALLBACK_PATH)
    totals = frame.groupby("name")["all_goals"].sum().sort_values(ascending=False)
    leader, goals = totals.index[0], int(totals.iloc[0])

    answer = await offline_engine.process_question(QuestionContext("Who is the club's top scorer?"))

    assert answer.answer.startswith(f"The club's top scorer is {leader} with {goals} goals")
    assert answer.confidence == ConfidenceTier.HIGH
    assert [row["name"] for row in answer.visualization.data][0] == leader


@pytest.mark.asyncio
async def test_offline_headcount(offline_engine):
    answer = await offline_engine.process_question(QuestionContext("How many players does the club have?"))
    assert answer.answer == "The club currently has 3 registered players."


@pytest.mark.asyncio
async def test_offline_comparison_table(offline_engine):
    answer = await offline_engine.process_question(
        QuestionContext("Compare Luke Bangs and Oli Goddard for assists")
    )

    assert answer.answer == "Oli Goddard leads with 7 assists, ahead of Luke Bangs (5)."
    assert answer.visualization.kind == "table"


@pytest.mark.asyncio
async def test_offline_best_season_chart(offline_engine):
    answer = await offline_engine.process_question(
        QuestionContext("What was Luke Bangs' best season for goals?")
    )

    assert answer.answer.startswith("Luke Bangs' best season for goals was 2022/23 with 6.")
    assert answer.visualization.kind == "chart"


@pytest.mark.asyncio
async def test_offline_home_away_question_explains_the_gap(offline_engine):
    outcome = await offline_engine.answer_question(
        QuestionContext("How many goals has Luke Bangs scored at home?")
    )

    assert outcome.answer.answer == (
        "I can't answer that from the club records available: "
        "home/away and competition splits are not recorded."
    )
    assert outcome.answer.confidence == ConfidenceTier.LOW
    assert "try again" not in outcome.answer.answer.lower()


@pytest.mark.asyncio
async def test_processing_details(offline_engine):
    await offline_engine.process_question(QuestionContext("How many goals has Luke Bangs scored?"))

    details = offline_engine.get_processing_details()

    assert details.question_analysis.type == IntentKind.PLAYER
    assert "total" in details.timings_ms
    assert details.state_path[-1] == "answered"
    assert [e.canonical_name for e in details.resolved_entities] == ["Luke Bangs"]
    assert not details.used_fallback


@pytest.mark.asyncio
async def test_empty_question(offline_engine):
    answer = await offline_engine.process_question(QuestionContext("   "))
    assert answer.confidence == ConfidenceTier.LOW


@pytest.mark.asyncio
async def test_multiple_questions(offline_engine):
    answers = await offline_engine.process_multiple_questions([
        QuestionContext("How many goals has Luke Bangs scored?"),
        QuestionContext("How many assists has Oli Goddard got?"),
    ])

    assert "10 goals" in answers[0].answer
    assert "7 assists" in answers[1].answer


@pytest.mark.asyncio
async def test_unexpected_error_becomes_apology(offline_engine):
    await offline_engine.refresh_roster()
    offline_engine.planner.plan = MagicMock(side_effect=RuntimeError("boom"))

    outcome = await offline_engine.answer_question(QuestionContext("How many goals has Luke Bangs scored?"))

    assert outcome.answer.confidence == ConfidenceTier.LOW
    assert "boom" not in outcome.answer.answer
    assert outcome.details.notes == ["unexpected error: RuntimeError"]


def test_sync_wrapper(today):
    engine = ClubStatsIntelligence(EngineSettings(), today=today)

    answer = engine.process_question_sync("How many goals has Jonny Sourris scored?")

    assert "12 goals" in answer.answer


def test_missing_credentials_without_fallback_raises():
    with pytest.raises(ConfigurationError):
        ClubStatsIntelligence(EngineSettings(), use_fallback=False)
