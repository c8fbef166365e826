"""Club statistics store interface.

- QueryDescriptor: one retrieval request (subject + fields + modifiers)
- StatsStore: narrow async ``run_query(query, params)`` interface
- SupabaseStatsStore: live store over ``player_match_stats`` (sync client
  moved off the event loop)
- FallbackStatsStore: small static CSV dataset loaded with pandas
- Roster providers for the entity resolver
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd
from supabase import Client, create_client

from ..config.club_entities import (
    DEFAULT_TEAM_ALIASES,
    EntityType,
    ModifierSet,
    Roster,
    RosterEntry,
    StatRecord,
)
from ..config.metrics import MATCH_LEVEL_FIELDS

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_PATH = Path(__file__).resolve().parent.parent / "data" / "fallback_players.csv"

# Identity columns every store returns alongside the requested fields.
IDENTITY_FIELDS = ("name", "team", "season")


class StoreError(Exception):
    """Base exception for store operations."""

    pass


class StoreTimeoutError(StoreError):
    """The store did not answer within the allotted time."""

    pass


class StoreRefusal(StoreError):
    """The store can never answer this request, so retrying will not help."""

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


class QueryKind(Enum):
    ENTITY_TOTALS = "entity_totals"
    COHORT_TOTALS = "cohort_totals"
    ENTITY_SEASONS = "entity_seasons"
    COHORT_SEASONS = "cohort_seasons"


@dataclass(frozen=True)
class QueryDescriptor:
    """One retrieval request for the store."""
    kind: QueryKind
    subject: Optional[str]
    subject_type: EntityType
    fields: Tuple[str, ...]
    modifiers: ModifierSet = field(default_factory=ModifierSet)

    @property
    def is_cohort(self) -> bool:
        return self.kind in (QueryKind.COHORT_TOTALS, QueryKind.COHORT_SEASONS)

    @property
    def label(self) -> str:
        return self.subject or f"{self.subject_type.value} cohort"

    def params(self) -> Dict[str, Any]:
        time_range = self.modifiers.time_range
        return {
            "kind": self.kind.value,
            "subject": self.subject,
            "subject_type": self.subject_type.value,
            "fields": sorted(self.fields),
            "season": time_range.season if time_range else None,
            "start_date": time_range.start.isoformat() if time_range and time_range.start else None,
            "end_date": time_range.end.isoformat() if time_range and time_range.end else None,
            "teams": list(self.modifiers.teams),
            "location": self.modifiers.location.value if self.modifiers.location else None,
            "competition_types": list(self.modifiers.competition_types),
        }

    def with_modifiers(self, modifiers: ModifierSet) -> "QueryDescriptor":
        return replace(self, modifiers=modifiers)


@dataclass
class StoreResponse:
    records: List[StatRecord] = field(default_factory=list)
    source: str = "store"
    cached: bool = False


class StatsStore:
    """Narrow interface every statistics source implements."""

    name = "store"

    async def run_query(self, query: QueryDescriptor, params: Dict[str, Any]) -> StoreResponse:
        raise NotImplementedError

    async def close(self) -> None:
        return None


def _records(rows: Iterable[Dict[str, Any]]) -> List[StatRecord]:
    return [StatRecord(row) for row in rows]


def _count_match_level_once(rows: List[Dict[str, Any]], fields: Iterable[str]) -> None:
    """Keep match-level figures on one row per (team, match) so team totals are not multiplied."""
    match_fields = [f for f in fields if f in MATCH_LEVEL_FIELDS]
    if not match_fields:
        return
    seen = set()
    for row in rows:
        match_id = row.get("match_id")
        if match_id is None:
            continue
        key = (row.get("team"), match_id)
        if key in seen:
            for f in match_fields:
                row.pop(f, None)
        else:
            seen.add(key)


class SupabaseStatsStore(StatsStore):
    """Live club statistics from the ``player_match_stats`` table."""

    name = "supabase"
    PAGE_SIZE = 1000

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        client: Optional[Client] = None,
        table: str = "player_match_stats",
    ):
        if client is None:
            if not supabase_url or not supabase_key:
                raise StoreError("Supabase URL and key are required for the live store")
            client = create_client(supabase_url, supabase_key)
        self.supabase: Client = client
        self.table = table

    async def run_query(self, query: QueryDescriptor, params: Dict[str, Any]) -> StoreResponse:
        rows = await asyncio.to_thread(self._fetch_rows, query, params)
        logger.debug(f"Fetched {len(rows)} rows for {query.kind.value} '{query.label}'")
        return StoreResponse(records=_records(rows), source=self.name)

    def _fetch_rows(self, query: QueryDescriptor, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        columns = ["player_name", "team", "season", "match_id"]
        columns += [f for f in sorted(query.fields) if f not in IDENTITY_FIELDS]
        rows: List[Dict[str, Any]] = []
        offset = 0
        try:
            while True:
                qb = self.supabase.table(self.table).select(",".join(columns))
                qb = self._apply_filters(qb, query, params)
                resp = qb.range(offset, offset + self.PAGE_SIZE - 1).execute()
                page = resp.data or []
                rows.extend(page)
                if len(page) < self.PAGE_SIZE:
                    break
                offset += self.PAGE_SIZE
        except TimeoutError as e:
            raise StoreTimeoutError(f"Statistics request timed out: {e}")
        except Exception as e:
            logger.exception("Error fetching club statistics")
            raise StoreError(f"Failed to run statistics request: {e}")

        for row in rows:
            row["name"] = row.pop("player_name", None)
        if query.subject_type == EntityType.TEAM:
            _count_match_level_once(rows, query.fields)
        return rows

    @staticmethod
    def _apply_filters(qb: Any, query: QueryDescriptor, params: Dict[str, Any]) -> Any:
        if query.subject and not query.is_cohort:
            column = "player_name" if query.subject_type == EntityType.PLAYER else "team"
            qb = qb.eq(column, query.subject)
        if params.get("season"):
            qb = qb.eq("season", params["season"])
        else:
            if params.get("start_date"):
                qb = qb.gte("match_date", params["start_date"])
            if params.get("end_date"):
                qb = qb.lte("match_date", params["end_date"])
        if params.get("teams"):
            qb = qb.in_("team", params["teams"])
        if params.get("location"):
            qb = qb.eq("venue", params["location"])
        if params.get("competition_types"):
            qb = qb.in_("competition_type", params["competition_types"])
        return qb


class FallbackStatsStore(StatsStore):
    """
    Static per-player, per-season statistics used when the live store is
    unreachable and in tests.

    Rows carry season totals, so location, competition and arbitrary date
    filters cannot be honoured; such requests are reported as not covered.
    """

    name = "fallback"

    def __init__(self, csv_path: Optional[Path] = None):
        self.csv_path = Path(csv_path) if csv_path else DEFAULT_FALLBACK_PATH
        self.frame = pd.read_csv(self.csv_path)
        self.player_names = sorted(self.frame["name"].dropna().unique().tolist())
        self.team_names = sorted(self.frame["team"].dropna().unique().tolist())
        logger.info(f"Loaded fallback dataset: {len(self.frame)} rows, {len(self.player_names)} players")

    def unsupported(self, query: QueryDescriptor) -> Optional[str]:
        """Why this dataset cannot answer a request, or None when it can."""
        modifiers = query.modifiers
        if modifiers.location is not None or modifiers.competition_types:
            return "home/away and competition splits are not recorded"
        if modifiers.time_range is not None and modifiers.time_range.season is None:
            return "only whole seasons are recorded"
        if query.subject_type == EntityType.TEAM and MATCH_LEVEL_FIELDS.intersection(query.fields):
            return "team match figures are not recorded"
        missing = [f for f in query.fields if f not in self.frame.columns]
        if missing:
            logger.debug(f"Fallback dataset lacks fields {missing}")
            return "that statistic is not recorded"
        return None

    def covers(self, query: QueryDescriptor) -> bool:
        if self.unsupported(query) is not None:
            return False
        if query.is_cohort or not query.subject or query.subject_type == EntityType.TEAM:
            # a partial roster cannot stand in for a club-wide cohort or a team total
            return False
        return query.subject in self.player_names

    async def run_query(self, query: QueryDescriptor, params: Dict[str, Any]) -> StoreResponse:
        reason = self.unsupported(query)
        if reason:
            raise StoreRefusal(f"Fallback dataset cannot answer '{query.label}': {reason}", reason)
        frame = self.frame
        if query.subject and not query.is_cohort:
            column = "name" if query.subject_type == EntityType.PLAYER else "team"
            frame = frame[frame[column] == query.subject]
        if params.get("season"):
            frame = frame[frame["season"] == params["season"]]
        if params.get("teams"):
            frame = frame[frame["team"].isin(params["teams"])]

        columns = [c for c in (*IDENTITY_FIELDS, *query.fields) if c in frame.columns]
        rows = frame[list(dict.fromkeys(columns))].to_dict("records")
        return StoreResponse(records=_records(rows), source=self.name)

    def roster_provider(self) -> "StaticRosterProvider":
        return StaticRosterProvider(self.player_names, self.team_names)


class RosterProvider:
    """Supplies the current list of canonical player and team names."""

    async def fetch_roster(self) -> Roster:
        raise NotImplementedError


def build_roster(players: Iterable[str], teams: Iterable[str] = ()) -> Roster:
    entries = [RosterEntry(name, EntityType.PLAYER) for name in sorted({p for p in players if p})]
    team_names = {t for t in teams if t} | set(DEFAULT_TEAM_ALIASES)
    entries.extend(RosterEntry(name, EntityType.TEAM) for name in sorted(team_names))
    return Roster(tuple(entries))


class StaticRosterProvider(RosterProvider):
    def __init__(self, players: Iterable[str], teams: Iterable[str] = ()):
        self._roster = build_roster(players, teams)

    async def fetch_roster(self) -> Roster:
        return self._roster


class SupabaseRosterProvider(RosterProvider):
    """Registered players from the ``players`` table."""

    def __init__(self, client: Client, table: str = "players"):
        self.supabase = client
        self.table = table

    async def fetch_roster(self) -> Roster:
        rows = await asyncio.to_thread(self._fetch_names)
        logger.info(f"✅ Loaded roster with {len(rows)} registered players")
        return build_roster((r.get("name") for r in rows), (r.get("team") for r in rows))

    def _fetch_names(self) -> List[Dict[str, Any]]:
        try:
            resp = self.supabase.table(self.table).select("name,team").execute()
            return resp.data or []
        except Exception as e:
            logger.exception("Error fetching roster")
            raise StoreError(f"Failed to fetch roster: {e}")
