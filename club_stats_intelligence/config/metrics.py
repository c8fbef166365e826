"""
Metric registry and synonym tables.

Every statistic the engine can answer is registered here once, keyed by its
canonical code. Natural-language phrases map to codes through
METRIC_SYNONYMS (matched longest first) and WEAK_METRIC_SYNONYMS (bare verbs,
only consulted when nothing else matched).
"""

from typing import Callable, Dict, Optional, Tuple

from .club_entities import EntityType, MetricKind, MetricSpec, StatRecord


def _ratio(numerator: str, denominator: str, scale: float = 1.0) -> Callable[[StatRecord], Optional[float]]:
    def formula(record: StatRecord) -> Optional[float]:
        bottom = record.get_number(denominator)
        if bottom == 0:
            return None
        return record.get_number(numerator) / bottom * scale
    return formula


def _penalty_conversion(record: StatRecord) -> Optional[float]:
    scored = record.get_number("penalties_scored")
    taken = scored + record.get_number("penalties_missed")
    if taken == 0:
        return None
    return scored / taken * 100.0


def _penalty_components(record: StatRecord) -> Dict[str, float]:
    scored = record.get_number("penalties_scored")
    return {"scored": scored, "taken": scored + record.get_number("penalties_missed")}


def _goal_involvements(record: StatRecord) -> Optional[float]:
    return record.get_number("all_goals") + record.get_number("assists")


_PLAYER_ONLY = (EntityType.PLAYER,)
_TEAM_ONLY = (EntityType.TEAM,)

_METRICS = (
    # Direct lookups
    MetricSpec("APP", "appearances", MetricKind.DIRECT, "appearance", "made",
               fields=("appearances",)),
    MetricSpec("MIN", "minutes", MetricKind.DIRECT, "minute", "played",
               fields=("minutes",),
               zero_phrase="{subject} {has} not played any minutes"),
    MetricSpec("MOM", "man of the match awards", MetricKind.DIRECT, "man of the match award", "won",
               fields=("mom",)),
    MetricSpec("AllGSC", "goals", MetricKind.DIRECT, "goal", "scored",
               fields=("all_goals",),
               clarification="(including both open play and penalty goals)"),
    MetricSpec("G", "open play goals", MetricKind.DIRECT, "open play goal", "scored",
               fields=("goals",)),
    MetricSpec("A", "assists", MetricKind.DIRECT, "assist", "provided",
               fields=("assists",)),
    MetricSpec("Y", "yellow cards", MetricKind.DIRECT, "yellow card", "received",
               fields=("yellow_cards",)),
    MetricSpec("R", "red cards", MetricKind.DIRECT, "red card", "received",
               fields=("red_cards",)),
    MetricSpec("SAVES", "saves", MetricKind.DIRECT, "save", "made",
               fields=("saves",)),
    MetricSpec("OG", "own goals", MetricKind.DIRECT, "own goal", "scored",
               fields=("own_goals",)),
    MetricSpec("C", "goals conceded", MetricKind.DIRECT, "goal", "conceded",
               fields=("conceded",), plural="goals"),
    MetricSpec("CLS", "clean sheets", MetricKind.DIRECT, "clean sheet", "kept",
               fields=("clean_sheets",)),
    MetricSpec("PSC", "penalties scored", MetricKind.DIRECT, "penalty", "scored",
               fields=("penalties_scored",), plural="penalties"),
    MetricSpec("PM", "penalties missed", MetricKind.DIRECT, "penalty", "missed",
               fields=("penalties_missed",), plural="penalties"),
    MetricSpec("PCO", "penalties conceded", MetricKind.DIRECT, "penalty", "conceded",
               fields=("penalties_conceded",), plural="penalties"),
    MetricSpec("PSV", "penalties saved", MetricKind.DIRECT, "penalty", "saved",
               fields=("penalties_saved",), plural="penalties"),
    MetricSpec("FTP", "fantasy points", MetricKind.DIRECT, "fantasy point", "earned",
               fields=("fantasy_points",),
               zero_phrase="{subject} {has} not earned any fantasy points"),
    MetricSpec("PTS", "league points", MetricKind.DIRECT, "league point", "earned",
               fields=("league_points",),
               zero_phrase="{subject} {has} not earned any league points",
               entity_types=_TEAM_ONLY),
    MetricSpec("PLAYERS", "registered players", MetricKind.DIRECT, "registered player", "",
               fields=("name",), aggregate="count",
               template="{subject} currently {has} {value} {label}",
               zero_phrase="{subject} {has} no registered players on record"),

    # Derived formulas
    MetricSpec("GI", "goal involvements", MetricKind.DERIVED, "goal involvement", "recorded",
               fields=("all_goals", "assists"), formula=_goal_involvements,
               clarification="(goals plus assists)"),
    MetricSpec("GperAPP", "goals per appearance", MetricKind.DERIVED, "goals per appearance", "averaged",
               fields=("all_goals", "appearances"), formula=_ratio("all_goals", "appearances"),
               decimals=2, unit="ratio",
               template="{subject} {has} averaged {value} goals per appearance",
               zero_phrase="{subject} {has} not scored a goal yet",
               guard_message="{subject} {has} not made an appearance yet, so there is no goals per appearance figure"),
    MetricSpec("CperAPP", "goals conceded per appearance", MetricKind.DERIVED,
               "goals conceded per appearance", "averaged",
               fields=("conceded", "appearances"), formula=_ratio("conceded", "appearances"),
               decimals=2, unit="ratio",
               template="{subject} {has} conceded an average of {value} goals per appearance",
               zero_phrase="{subject} {has} not conceded a goal",
               guard_message="{subject} {has} not made an appearance yet, so there is no goals conceded per appearance figure"),
    MetricSpec("MperG", "minutes per goal", MetricKind.DERIVED, "minutes per goal", "averaged",
               fields=("minutes", "all_goals"), formula=_ratio("minutes", "all_goals"),
               unit="ratio",
               template="{subject} {has} scored a goal every {value} minutes on average",
               zero_phrase="{subject} {has} not played any minutes",
               guard_message="{subject} {has} not scored a goal yet, so there is no minutes per goal figure"),
    MetricSpec("FTPperAPP", "fantasy points per appearance", MetricKind.DERIVED,
               "fantasy points per appearance", "averaged",
               fields=("fantasy_points", "appearances"), formula=_ratio("fantasy_points", "appearances"),
               decimals=1, unit="ratio",
               template="{subject} {has} averaged {value} fantasy points per appearance",
               zero_phrase="{subject} {has} not earned any fantasy points yet",
               guard_message="{subject} {has} not made an appearance yet, so there is no fantasy points per appearance figure"),
    MetricSpec("PenConv", "penalty conversion rate", MetricKind.DERIVED, "penalty conversion rate", "",
               fields=("penalties_scored", "penalties_missed"), formula=_penalty_conversion,
               unit="percent",
               template="{subject} {has} a penalty conversion rate of {value} ({scored} of {taken} penalties scored)",
               zero_phrase="{subject} {has} not converted any of the {taken} penalties taken, so the conversion rate is nil",
               guard_message="{subject} {has} no penalties recorded, so there is no penalty conversion rate to report",
               entity_types=_PLAYER_ONLY),

    # Ranked cohort comparisons
    MetricSpec("TopScorer", "top scorer", MetricKind.RANKED, "top scorer", "scored",
               fields=("all_goals",), rank_by="AllGSC"),
    MetricSpec("TopAssister", "top assister", MetricKind.RANKED, "top assister", "provided",
               fields=("assists",), rank_by="A"),
)

METRIC_REGISTRY: Dict[str, MetricSpec] = {spec.code: spec for spec in _METRICS}

# Recorded once per match on every player row of the line-up
MATCH_LEVEL_FIELDS = frozenset({"conceded", "clean_sheets", "league_points"})

# Extra component extractors for templates that quote their inputs.
METRIC_COMPONENTS: Dict[str, Callable[[StatRecord], Dict[str, float]]] = {
    "PenConv": _penalty_components,
}

METRIC_SYNONYMS: Dict[str, str] = {
    "appearances": "APP", "appearance": "APP", "games played": "APP",
    "matches played": "APP", "how many games": "APP", "how many matches": "APP",
    "caps": "APP",
    "minutes": "MIN", "minutes played": "MIN", "playing time": "MIN", "game time": "MIN",
    "man of the match": "MOM", "man of the match awards": "MOM",
    "player of the match": "MOM",
    "goals": "AllGSC", "goal": "AllGSC", "how many goals": "AllGSC",
    "goal tally": "AllGSC", "goals scored": "AllGSC", "total goals": "AllGSC",
    "all goals": "AllGSC",
    "open play goals": "G", "goals from open play": "G", "non penalty goals": "G",
    "assists": "A", "assist": "A", "how many assists": "A",
    "yellow cards": "Y", "yellow card": "Y", "yellows": "Y", "bookings": "Y", "booking": "Y",
    "red cards": "R", "red card": "R", "reds": "R", "sendings off": "R", "sent off": "R",
    "saves": "SAVES", "saves made": "SAVES",
    "own goals": "OG", "own goal": "OG",
    "goals conceded": "C", "conceded": "C", "goals against": "C",
    "clean sheets": "CLS", "clean sheet": "CLS", "shutouts": "CLS",
    "penalties": "PSC", "penalty": "PSC", "penalties scored": "PSC",
    "penalty goals": "PSC", "scored penalties": "PSC", "spot kicks": "PSC",
    "penalties missed": "PM", "missed penalties": "PM", "penalty misses": "PM",
    "penalties conceded": "PCO", "conceded penalties": "PCO",
    "penalties saved": "PSV", "penalty saves": "PSV", "saved penalties": "PSV",
    "fantasy points": "FTP", "fantasy score": "FTP", "fantasy": "FTP",
    "league points": "PTS", "match points": "PTS",
    "registered players": "PLAYERS", "how many players": "PLAYERS",
    "number of players": "PLAYERS", "squad size": "PLAYERS",
    "goal involvements": "GI", "goal contributions": "GI",
    "goals per appearance": "GperAPP", "goals per game": "GperAPP",
    "goals per match": "GperAPP", "scoring rate": "GperAPP",
    "goals conceded per appearance": "CperAPP", "goals conceded per game": "CperAPP",
    "conceded per game": "CperAPP",
    "minutes per goal": "MperG",
    "fantasy points per appearance": "FTPperAPP", "fantasy points per game": "FTPperAPP",
    "penalty conversion rate": "PenConv", "penalty conversion": "PenConv",
    "penalty record": "PenConv", "conversion rate": "PenConv",
    "penalty success rate": "PenConv",
    "top scorer": "TopScorer", "top goalscorer": "TopScorer", "top goal scorer": "TopScorer",
    "leading scorer": "TopScorer", "leading goalscorer": "TopScorer",
    "top assister": "TopAssister", "leading assister": "TopAssister",
    "assist leader": "TopAssister",
}

WEAK_METRIC_SYNONYMS: Dict[str, str] = {
    "scored": "AllGSC", "scoring": "AllGSC", "score": "AllGSC",
    "assisted": "A", "booked": "Y", "played": "APP",
}

# Phrases with more than one plausible reading. Ordered by likelihood
# for the subject type the question is about.
AMBIGUOUS_METRIC_PHRASES: Dict[str, Dict[EntityType, Tuple[str, ...]]] = {
    "points": {
        EntityType.PLAYER: ("FTP", "PTS"),
        EntityType.TEAM: ("PTS", "FTP"),
    },
}


def get_metric(code: str) -> MetricSpec:
    """Look up a registered metric, raising KeyError for unknown codes."""
    return METRIC_REGISTRY[code]


def all_metric_phrases() -> Tuple[str, ...]:
    """Every phrase that signals a statistic, longest first."""
    phrases = set(METRIC_SYNONYMS) | set(WEAK_METRIC_SYNONYMS) | set(AMBIGUOUS_METRIC_PHRASES)
    return tuple(sorted(phrases, key=lambda p: (-len(p), p)))
