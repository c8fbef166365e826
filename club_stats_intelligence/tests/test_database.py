"""Tests for the statistics stores, roster providers and engine settings."""

from datetime import date
from unittest.mock import MagicMock

import pytest

from club_stats_intelligence.config.club_entities import EntityType, Location, ModifierSet, TimeRange
from club_stats_intelligence.config.metrics import get_metric
from club_stats_intelligence.config.settings import ConfigurationError, EngineSettings
from club_stats_intelligence.src.computation import compute_metric
from club_stats_intelligence.src.database import (
    FallbackStatsStore,
    QueryDescriptor,
    QueryKind,
    StoreError,
    StoreRefusal,
    StoreTimeoutError,
    SupabaseRosterProvider,
    SupabaseStatsStore,
)


def descriptor(subject="Luke Bangs", fields=("all_goals",), modifiers=None, kind=QueryKind.ENTITY_TOTALS,
               subject_type=EntityType.PLAYER):
    return QueryDescriptor(kind, subject, subject_type, tuple(fields), modifiers or ModifierSet())


@pytest.fixture(scope="module")
def fallback():
    return FallbackStatsStore()


# ---------- fallback dataset ----------

def test_fallback_roster_names(fallback):
    assert fallback.player_names == ["Jonny Sourris", "Luke Bangs", "Oli Goddard"]
    assert "1s" in fallback.team_names


def test_fallback_covers_known_player(fallback):
    assert fallback.covers(descriptor())
    assert not fallback.covers(descriptor(subject="Joe Bloggs"))


def test_fallback_does_not_cover_cohorts(fallback):
    assert not fallback.covers(descriptor(subject=None, kind=QueryKind.COHORT_TOTALS))


def test_fallback_does_not_cover_team_totals(fallback):
    assert not fallback.covers(descriptor(subject="1s", subject_type=EntityType.TEAM))


def test_fallback_refuses_team_match_figures(fallback):
    query = descriptor(subject="1s", subject_type=EntityType.TEAM, fields=("clean_sheets",))
    assert fallback.unsupported(query) == "team match figures are not recorded"


def test_fallback_refuses_location_and_date_filters(fallback):
    home = ModifierSet(location=Location.HOME)
    march = ModifierSet(time_range=TimeRange("in March", start=date(2024, 3, 1), end=date(2024, 3, 31)))

    assert fallback.unsupported(descriptor(modifiers=home))
    assert fallback.unsupported(descriptor(modifiers=march))
    assert fallback.unsupported(descriptor(fields=("distance_run",)))
    assert not fallback.covers(descriptor(modifiers=home))


@pytest.mark.asyncio
async def test_fallback_unsupported_request_raises(fallback):
    query = descriptor(modifiers=ModifierSet(competition_types=("cup",)))
    with pytest.raises(StoreRefusal) as excinfo:
        await fallback.run_query(query, query.params())
    assert excinfo.value.reason == "home/away and competition splits are not recorded"


@pytest.mark.asyncio
async def test_fallback_player_totals(fallback):
    query = descriptor(fields=("all_goals", "assists"))
    response = await fallback.run_query(query, query.params())

    assert response.source == "fallback"
    assert {r.get_str("name") for r in response.records} == {"Luke Bangs"}
    assert sum(r.get_number("all_goals") for r in response.records) == 10
    assert sum(r.get_number("assists") for r in response.records) == 5


@pytest.mark.asyncio
async def test_fallback_season_filter(fallback):
    query = descriptor(modifiers=ModifierSet(time_range=TimeRange("2022/23", season="2022/23")))
    response = await fallback.run_query(query, query.params())

    assert len(response.records) == 1
    assert response.records[0].get_number("all_goals") == 6


@pytest.mark.asyncio
async def test_fallback_team_subject(fallback):
    query = descriptor(subject="2s", subject_type=EntityType.TEAM)
    response = await fallback.run_query(query, query.params())
    assert [r.get_str("name") for r in response.records] == ["Luke Bangs"]


# ---------- Supabase store ----------

def mock_client(rows):
    """Supabase client whose query builder chains back to itself."""
    qb = MagicMock()
    for method in ("select", "eq", "in_", "gte", "lte", "range"):
        getattr(qb, method).return_value = qb
    qb.execute.return_value = MagicMock(data=rows)
    client = MagicMock()
    client.table.return_value = qb
    return client, qb


def test_supabase_store_requires_credentials():
    with pytest.raises(StoreError):
        SupabaseStatsStore()


@pytest.mark.asyncio
async def test_supabase_store_filters_and_renames():
    client, qb = mock_client([{"player_name": "Luke Bangs", "team": "3s", "season": "2023/24", "all_goals": 4}])
    store = SupabaseStatsStore(client=client)
    query = descriptor(modifiers=ModifierSet(
        time_range=TimeRange("2023/24", season="2023/24"), teams=("3s",), location=Location.AWAY,
    ))

    response = await store.run_query(query, query.params())

    assert response.source == "supabase"
    assert response.records[0].get_str("name") == "Luke Bangs"
    client.table.assert_called_with("player_match_stats")
    qb.eq.assert_any_call("player_name", "Luke Bangs")
    qb.eq.assert_any_call("season", "2023/24")
    qb.eq.assert_any_call("venue", "away")
    qb.in_.assert_called_with("team", ["3s"])


@pytest.mark.asyncio
async def test_supabase_store_wraps_client_errors():
    client, qb = mock_client([])
    qb.execute.side_effect = RuntimeError("connection refused")
    store = SupabaseStatsStore(client=client)

    with pytest.raises(StoreError):
        query = descriptor()
        await store.run_query(query, query.params())


@pytest.mark.asyncio
async def test_supabase_store_reports_timeouts():
    client, qb = mock_client([])
    qb.execute.side_effect = TimeoutError("read timed out")
    store = SupabaseStatsStore(client=client)
    query = descriptor()

    with pytest.raises(StoreTimeoutError):
        await store.run_query(query, query.params())


@pytest.mark.asyncio
async def test_team_totals_count_match_figures_once():
    rows = [
        {"player_name": "Luke Bangs", "team": "1s", "match_id": 7, "conceded": 2},
        {"player_name": "Oli Goddard", "team": "1s", "match_id": 7, "conceded": 2},
        {"player_name": "Luke Bangs", "team": "1s", "match_id": 8, "conceded": 1},
    ]
    client, _ = mock_client(rows)
    store = SupabaseStatsStore(client=client)
    query = descriptor(subject="1s", subject_type=EntityType.TEAM, fields=("conceded",))

    response = await store.run_query(query, query.params())

    assert compute_metric(get_metric("C"), response.records).value == 3


@pytest.mark.asyncio
async def test_player_totals_keep_every_match_row():
    client, _ = mock_client([
        {"player_name": "Luke Bangs", "team": "1s", "match_id": 7, "conceded": 2},
        {"player_name": "Luke Bangs", "team": "1s", "match_id": 8, "conceded": 1},
    ])
    store = SupabaseStatsStore(client=client)
    query = descriptor(fields=("conceded",))

    response = await store.run_query(query, query.params())

    assert compute_metric(get_metric("C"), response.records).value == 3


@pytest.mark.asyncio
async def test_supabase_roster_provider():
    client, _ = mock_client([{"name": "Luke Bangs", "team": "1s"}, {"name": "Oli Goddard", "team": "2s"}])

    roster = await SupabaseRosterProvider(client).fetch_roster()

    assert [e.name for e in roster.players] == ["Luke Bangs", "Oli Goddard"]


# ---------- settings ----------

def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "secret")
    monkeypatch.setenv("STORE_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("REDIS_PORT", "6380")
    monkeypatch.delenv("REDIS_HOST", raising=False)

    settings = EngineSettings.from_env("/nonexistent/.env")

    assert settings.has_live_store
    assert not settings.has_cache
    assert settings.store_timeout_seconds == 2.5
    assert settings.redis_port == 6380


def test_settings_reject_bad_numbers(monkeypatch):
    monkeypatch.setenv("RANKING_DEFAULT_LIMIT", "ten")
    with pytest.raises(ConfigurationError):
        EngineSettings.from_env("/nonexistent/.env")


def test_require_live_store():
    with pytest.raises(ConfigurationError):
        EngineSettings().require_live_store()
