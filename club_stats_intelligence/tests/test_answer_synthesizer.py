"""Tests for answer phrasing, confidence tiers and club vocabulary."""

import logging
from typing import Dict, List

import pytest

from club_stats_intelligence.config.club_entities import ConfidenceTier, QuestionContext, StatRecord
from club_stats_intelligence.src.answer_synthesizer import (
    AnswerSynthesizer,
    SynthesisState,
    ordinal,
    possessive,
    substitute_vocabulary,
)
from club_stats_intelligence.src.database import StatsStore
from club_stats_intelligence.src.query_parser import ClubQueryParser
from club_stats_intelligence.src.query_planner import (
    PlanOutcome,
    QueryPlanner,
    RequestOutcome,
    StoreUnavailable,
)


@pytest.fixture
def parser(roster, today):
    return ClubQueryParser(roster, today=today)


@pytest.fixture
def synthesizer():
    return AnswerSynthesizer()


def answer(parser, synthesizer, question, rows: Dict[object, List[dict]] = None, failed=(), user_context=None):
    """Parse ``question`` and synthesize with store rows keyed by request subject."""
    parsed = parser.parse_question(QuestionContext(question, user_context))
    plan = QueryPlanner(StatsStore()).plan(parsed)
    outcomes = []
    for descriptor in plan.requests:
        if descriptor.subject in failed:
            failure = StoreUnavailable(descriptor, "timed out", 2)
            outcomes.append(RequestOutcome(descriptor, source="unavailable", failure=failure))
        else:
            records = [StatRecord(r) for r in (rows or {}).get(descriptor.subject, [])]
            outcomes.append(RequestOutcome(descriptor, records))
    return synthesizer.synthesize(parsed, PlanOutcome(outcomes))


def test_simple_player_answer(parser, synthesizer):
    result = answer(parser, synthesizer, "How many goals has Luke Bangs scored?",
                    {"Luke Bangs": [{"name": "Luke Bangs", "all_goals": 29}]})

    assert result.answer.answer == (
        "Luke Bangs has scored 29 goals (including both open play and penalty goals)."
    )
    assert result.answer.confidence == ConfidenceTier.HIGH
    assert result.state_path == [SynthesisState.RESOLVED.value, SynthesisState.ANSWERED.value]


def test_singular_noun(parser, synthesizer):
    result = answer(parser, synthesizer, "How many assists has Oli Goddard got?",
                    {"Oli Goddard": [{"name": "Oli Goddard", "assists": 1}]})
    assert result.answer.answer == "Oli Goddard has provided 1 assist."


def test_zero_value_uses_zero_phrase(parser, synthesizer):
    result = answer(parser, synthesizer, "How many red cards has Oli Goddard received?",
                    {"Oli Goddard": [{"name": "Oli Goddard", "red_cards": 0}]})

    assert result.answer.answer == "Oli Goddard has not received a red card."
    assert "0" not in result.answer.answer


def test_scope_suffix(parser, synthesizer):
    result = answer(parser, synthesizer, "How many goals has Luke Bangs scored for the 3s this season?",
                    {"Luke Bangs": [{"name": "Luke Bangs", "all_goals": 4}]})
    assert "for the 3s this season" in result.answer.answer


def test_penalty_conversion_answer(parser, synthesizer):
    result = answer(parser, synthesizer, "What is Jonny Sourris's penalty conversion rate?",
                    {"Jonny Sourris": [{"name": "Jonny Sourris", "penalties_scored": 3, "penalties_missed": 1}]})

    assert "75%" in result.answer.answer
    assert "3 of 4 penalties scored" in result.answer.answer
    assert result.answer.confidence == ConfidenceTier.HIGH


def test_guarded_penalty_conversion(parser, synthesizer):
    result = answer(parser, synthesizer, "What is Oli Goddard's penalty conversion rate?",
                    {"Oli Goddard": [{"name": "Oli Goddard", "penalties_scored": 0, "penalties_missed": 0}]})

    assert "no penalties recorded" in result.answer.answer
    assert result.answer.confidence == ConfidenceTier.HIGH


def test_ambiguous_metric_names_alternative(parser, synthesizer):
    result = answer(parser, synthesizer, "How many points has Luke Bangs got?",
                    {"Luke Bangs": [{"name": "Luke Bangs", "fantasy_points": 150}]})

    assert "150 fantasy points" in result.answer.answer
    assert "league points" in result.answer.answer
    assert result.answer.confidence == ConfidenceTier.MEDIUM


def test_multi_metric_answer_has_table(parser, synthesizer):
    result = answer(parser, synthesizer, "Goals and assists for Luke Bangs",
                    {"Luke Bangs": [{"name": "Luke Bangs", "all_goals": 10, "assists": 0}]})

    assert result.answer.answer == "Here are the statistics for Luke Bangs: 10 goals and no assists."
    visualization = result.answer.visualization
    assert visualization.kind == "table"
    assert [c["key"] for c in visualization.config["columns"]] == ["statistic", "value"]


def test_comparison_answer(parser, synthesizer):
    result = answer(parser, synthesizer, "Compare Luke Bangs and Oli Goddard for assists", {
        "Luke Bangs": [{"name": "Luke Bangs", "assists": 5}],
        "Oli Goddard": [{"name": "Oli Goddard", "assists": 7}],
    })

    assert result.answer.answer == "Oli Goddard leads with 7 assists, ahead of Luke Bangs (5)."
    columns = result.answer.visualization.config["columns"]
    assert columns[0] == {"key": "name", "label": "Player"}
    assert {"key": "assists", "label": "Assists"} in columns


def test_comparison_with_one_failure_is_medium(parser, synthesizer):
    result = answer(parser, synthesizer, "Compare Luke Bangs and Oli Goddard for assists",
                    {"Luke Bangs": [{"name": "Luke Bangs", "assists": 5}]}, failed=("Oli Goddard",))

    assert "Oli Goddard" in result.answer.answer
    assert result.answer.confidence == ConfidenceTier.MEDIUM


def test_ranking_answer(parser, synthesizer):
    result = answer(parser, synthesizer, "Who is the club's top scorer?", {None: [
        {"name": "Luke Bangs", "all_goals": 10},
        {"name": "Oli Goddard", "all_goals": 8},
        {"name": "Jonny Sourris", "all_goals": 12},
    ]})

    assert result.answer.answer.startswith("The club's top scorer is Jonny Sourris with 12 goals")
    assert "Here are the top 3 players:" in result.answer.answer
    rows = result.answer.visualization.data
    assert [(r["rank"], r["name"]) for r in rows] == [(1, "Jonny Sourris"), (2, "Luke Bangs"), (3, "Oli Goddard")]


def test_club_headcount(parser, synthesizer):
    result = answer(parser, synthesizer, "How many players does the club have?", {None: [
        {"name": "Luke Bangs"}, {"name": "Oli Goddard"}, {"name": "Luke Bangs"},
    ]})
    assert result.answer.answer == "The club currently has 2 registered players."


def test_historical_best_season_chart(parser, synthesizer):
    result = answer(parser, synthesizer, "What was Luke Bangs' best season for goals?", {"Luke Bangs": [
        {"name": "Luke Bangs", "season": "2022/23", "all_goals": 6},
        {"name": "Luke Bangs", "season": "2023/24", "all_goals": 4},
    ]})

    assert result.answer.answer.startswith("Luke Bangs' best season for goals was 2022/23 with 6.")
    assert result.answer.visualization.kind == "chart"
    assert result.answer.visualization.data == [
        {"season": "2022/23", "value": 6.0},
        {"season": "2023/24", "value": 4.0},
    ]


def test_fewest_ranking_words_zero_without_a_digit(parser, synthesizer):
    result = answer(parser, synthesizer, "Which player has the fewest red cards?", {None: [
        {"name": "Luke Bangs", "red_cards": 0},
        {"name": "Oli Goddard", "red_cards": 2},
    ]})

    assert result.answer.answer.startswith(
        "The player with the fewest red cards is Luke Bangs with no red cards."
    )
    assert " 0 " not in result.answer.answer


def test_worst_season_is_not_called_a_record(parser, synthesizer):
    result = answer(parser, synthesizer, "What is the worst season for goals?", {None: [
        {"name": "Luke Bangs", "season": "2022/23", "all_goals": 0},
        {"name": "Oli Goddard", "season": "2022/23", "all_goals": 9},
    ]})

    assert result.answer.answer == (
        "The quietest single season for goals was 2022/23, when Luke Bangs recorded no goals."
    )
    assert "record for" not in result.answer.answer


def test_best_season_with_nothing_recorded(parser, synthesizer):
    result = answer(parser, synthesizer, "What is the best season for goals?", {None: [
        {"name": "Luke Bangs", "season": "2022/23", "all_goals": 0},
    ]})

    assert result.answer.answer == "No player has recorded any goals in a single season yet."


def test_unknown_player_is_low_and_logged(parser, synthesizer, caplog):
    caplog.set_level(logging.WARNING, logger="club_stats_intelligence.unanswered")

    result = answer(parser, synthesizer, "How many goals has Joe Bloggs scored?")

    assert result.answer.confidence == ConfidenceTier.LOW
    assert '"Joe Bloggs"' in result.answer.answer
    assert "database" not in result.answer.answer.lower()
    assert any("Joe Bloggs" in r.getMessage() for r in caplog.records)


def test_ambiguous_name_asks_which_player(parser, synthesizer):
    result = answer(parser, synthesizer, "How many goals has Smith scored?")

    assert "Dan Smith or Tom Smith" in result.answer.answer
    assert result.answer.confidence == ConfidenceTier.MEDIUM


def test_missing_entity_asks_which_player(parser, synthesizer):
    result = answer(parser, synthesizer, "How many goals has he scored?")

    assert result.answer.answer.startswith("Which player")
    assert result.answer.confidence == ConfidenceTier.MEDIUM


def test_missing_metric_asks_which_statistic(parser, synthesizer):
    result = answer(parser, synthesizer, "Tell me about Luke Bangs' stats")

    assert result.answer.answer.startswith("What would you like to know about Luke Bangs?")
    assert result.answer.confidence == ConfidenceTier.MEDIUM


def test_store_unavailable_is_low(parser, synthesizer):
    result = answer(parser, synthesizer, "How many goals has Luke Bangs scored?", failed=("Luke Bangs",))

    assert "currently unable to retrieve this information" in result.answer.answer
    assert result.answer.confidence == ConfidenceTier.LOW


def test_no_data_is_low(parser, synthesizer):
    result = answer(parser, synthesizer, "How many goals has Luke Bangs scored?", {"Luke Bangs": []})
    assert result.answer.confidence == ConfidenceTier.LOW


def test_unclassified_is_low(parser, synthesizer):
    result = answer(parser, synthesizer, "What's the weather like?")
    assert result.answer.confidence == ConfidenceTier.LOW


def test_technical_vocabulary_is_replaced():
    text = substitute_vocabulary("The Supabase database query hit a connection timeout")
    lowered = text.lower()
    for term in ("supabase", "database", "query", "connection", "timeout"):
        assert term not in lowered


def test_phrasing_helpers():
    assert ordinal(1) == "1st"
    assert ordinal(12) == "12th"
    assert ordinal(23) == "23rd"
    assert possessive("Luke Bangs") == "Luke Bangs'"
    assert possessive("Oli Goddard") == "Oli Goddard's"
