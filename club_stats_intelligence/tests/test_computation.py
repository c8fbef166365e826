"""Tests for record coercion and the pure computation layer."""

import math

import pytest

from club_stats_intelligence.config.club_entities import RankDirection, StatRecord
from club_stats_intelligence.config.metrics import get_metric
from club_stats_intelligence.src.computation import (
    aggregate_records,
    best_season,
    cohort_values,
    compute_metric,
    format_value,
    rank_entities,
    rounds_to_zero,
    season_breakdown,
)


@pytest.fixture
def season_records():
    return [
        StatRecord({"name": "Luke Bangs", "season": "2022/23", "all_goals": 6, "appearances": 12}),
        StatRecord({"name": "Luke Bangs", "season": "2023/24", "all_goals": 4, "appearances": 8}),
        StatRecord({"name": "Oli Goddard", "season": "2022/23", "all_goals": 4, "appearances": 10}),
        StatRecord({"name": "Oli Goddard", "season": "2023/24", "all_goals": 7, "appearances": 8}),
    ]


# ---------- StatRecord ----------

def test_stat_record_coercion():
    record = StatRecord({"goals": "1,234", "nan": math.nan, "null": "null", "flag": "yes", "text": " 1s "})

    assert record.get_number("goals") == 1234.0
    assert record.get_number("nan", 5.0) == 5.0
    assert record.get_int("null") == 0
    assert record.get_bool("flag") is True
    assert record.get_str("text") == "1s"
    assert not record.has("nan")
    assert "goals" in record


def test_aggregate_does_not_mutate_inputs(season_records):
    before = [r.to_dict() for r in season_records]
    totals = aggregate_records(season_records)

    assert totals.get_number("all_goals") == 21
    assert [r.to_dict() for r in season_records] == before


# ---------- direct and derived metrics ----------

def test_direct_metric_sums_records(season_records):
    computed = compute_metric(get_metric("AllGSC"), season_records[:2])
    assert computed.value == 10
    assert computed.available


def test_missing_field_is_unavailable():
    computed = compute_metric(get_metric("A"), [StatRecord({"name": "Luke Bangs", "all_goals": 3})])
    assert not computed.available


def test_no_records_is_unavailable():
    assert not compute_metric(get_metric("AllGSC"), []).available


def test_penalty_conversion():
    record = StatRecord({"penalties_scored": 3, "penalties_missed": 1})
    computed = compute_metric(get_metric("PenConv"), [record])

    assert computed.value == 75.0
    assert computed.components == {"scored": 3.0, "taken": 4.0}
    assert format_value(get_metric("PenConv"), computed.value) == "75%"


def test_penalty_conversion_without_penalties_is_guarded():
    record = StatRecord({"penalties_scored": 0, "penalties_missed": 0})
    computed = compute_metric(get_metric("PenConv"), [record])

    assert computed.guarded
    assert computed.value is None
    assert "no penalties recorded" in computed.guard_message


def test_goals_per_appearance(season_records):
    spec = get_metric("GperAPP")
    computed = compute_metric(spec, season_records[:2])

    assert computed.value == pytest.approx(0.5)
    assert format_value(spec, computed.value) == "0.50"


def test_rounds_to_zero_uses_metric_precision():
    assert rounds_to_zero(get_metric("GperAPP"), 0.004)
    assert not rounds_to_zero(get_metric("GperAPP"), 0.006)
    assert rounds_to_zero(get_metric("TopScorer"), 0.0)


def test_headcount_counts_distinct_names(season_records):
    assert compute_metric(get_metric("PLAYERS"), season_records).value == 2


def test_format_large_counts():
    assert format_value(get_metric("MIN"), 12345) == "12,345"


# ---------- rankings and seasons ----------

def test_rank_ties_break_alphabetically():
    rows = rank_entities({"Bee": 5, "Ant": 5, "Cat": 7})
    assert [(r.rank, r.name) for r in rows] == [(1, "Cat"), (2, "Ant"), (3, "Bee")]


def test_rank_lowest_and_limit():
    rows = rank_entities({"Bee": 5, "Ant": 2, "Cat": 7}, RankDirection.LOWEST, limit=2)
    assert [r.name for r in rows] == ["Ant", "Bee"]


def test_cohort_values(season_records):
    assert cohort_values(get_metric("AllGSC"), season_records) == {"Luke Bangs": 10, "Oli Goddard": 11}


def test_ranked_metric_ranks_underlying_metric(season_records):
    values = cohort_values(get_metric("TopScorer"), season_records)
    assert rank_entities(values)[0].name == "Oli Goddard"


def test_season_breakdown(season_records):
    breakdown = season_breakdown(get_metric("AllGSC"), season_records[:2])
    assert breakdown == [("2022/23", 6), ("2023/24", 4)]


def test_best_season(season_records):
    assert best_season(get_metric("AllGSC"), season_records) == ("Oli Goddard", "2023/24", 7)
