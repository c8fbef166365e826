"""
Club statistics entity definitions and data structures.

Shared types for the question pipeline: question context and analysis,
modifiers, metric specs, resolved entities, store records and the
answer/diagnostics contract.
"""

import math
from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple


class IntentKind(Enum):
    """Classified purpose of a question."""
    PLAYER = "player"
    TEAM = "team"
    CLUB = "club"
    RANKING = "ranking"
    COMPARISON = "comparison"
    HISTORICAL = "historical"
    UNCLASSIFIED = "unclassified"


class EntityType(Enum):
    PLAYER = "player"
    TEAM = "team"


class MetricKind(Enum):
    DIRECT = "direct"
    DERIVED = "derived"
    RANKED = "ranked"


class ConfidenceTier(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Location(Enum):
    HOME = "home"
    AWAY = "away"


class RankDirection(Enum):
    HIGHEST = "highest"
    LOWEST = "lowest"


@dataclass(frozen=True)
class QuestionContext:
    """Raw input for one question plus an optional entity hint."""
    question: str
    user_context: Optional[str] = None


@dataclass(frozen=True)
class TimeRange:
    label: str
    season: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "season": self.season,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
        }


@dataclass(frozen=True)
class ModifierSet:
    """Qualifiers attached to a question. Empty fields mean unfiltered."""
    time_range: Optional[TimeRange] = None
    teams: Tuple[str, ...] = ()
    location: Optional[Location] = None
    competition_types: Tuple[str, ...] = ()

    @property
    def is_default(self) -> bool:
        return (
            self.time_range is None
            and not self.teams
            and self.location is None
            and not self.competition_types
        )

    def describe(self) -> str:
        """Human readable scope, e.g. 'all seasons, all competitions'."""
        parts = [self.time_range.label if self.time_range else "all seasons"]
        if self.competition_types:
            parts.append(" and ".join(self.competition_types) + " matches")
        else:
            parts.append("all competitions")
        if self.teams:
            parts.append("for the " + ", ".join(self.teams))
        if self.location:
            parts.append(f"{self.location.value} games only")
        return ", ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time_range": self.time_range.to_dict() if self.time_range else None,
            "teams": list(self.teams),
            "location": self.location.value if self.location else None,
            "competition_types": list(self.competition_types),
        }


# Documented default scope: every season, every competition, no filters.
DEFAULT_MODIFIERS = ModifierSet()


@dataclass(frozen=True)
class QuestionAnalysis:
    """Structured classifier output. Never mutated after creation."""
    type: IntentKind
    entities: Tuple[str, ...]
    metrics: Tuple[str, ...]
    modifiers: ModifierSet = DEFAULT_MODIFIERS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "entities": list(self.entities),
            "metrics": list(self.metrics),
            "modifiers": self.modifiers.to_dict(),
        }


class StatRecord:
    """
    Read-only named field access over one store row.

    Values are coerced at the boundary so the computation layer only ever
    sees floats, ints, strings and bools.
    """

    _TRUE_STRINGS = {"true", "yes", "y", "1", "t"}
    _FALSE_STRINGS = {"false", "no", "n", "0", "f", ""}

    def __init__(self, values: Mapping[str, Any]):
        self._values = dict(values)

    def __contains__(self, key: str) -> bool:
        return key in self._values and not self._is_missing(self._values[key])

    def __repr__(self) -> str:
        return f"StatRecord({self._values!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, StatRecord) and other._values == self._values

    def keys(self) -> List[str]:
        return list(self._values.keys())

    def has(self, key: str) -> bool:
        return key in self

    @staticmethod
    def _is_missing(value: Any) -> bool:
        if value is None:
            return True
        if isinstance(value, float) and math.isnan(value):
            return True
        return isinstance(value, str) and value.strip().lower() in ("", "nan", "null", "none")

    def get_number(self, key: str, default: float = 0.0) -> float:
        value = self._values.get(key)
        if self._is_missing(value) or isinstance(value, bool):
            return float(value) if isinstance(value, bool) else default
        try:
            number = float(str(value).replace(",", "")) if isinstance(value, str) else float(value)
        except (TypeError, ValueError):
            return default
        if math.isnan(number) or math.isinf(number):
            return default
        return number

    def get_int(self, key: str, default: int = 0) -> int:
        return int(round(self.get_number(key, float(default))))

    def get_str(self, key: str, default: str = "") -> str:
        value = self._values.get(key)
        if self._is_missing(value):
            return default
        return str(value).strip()

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._values.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)) and not (isinstance(value, float) and math.isnan(value)):
            return value != 0
        text = str(value).strip().lower()
        if text in self._TRUE_STRINGS:
            return True
        if text in self._FALSE_STRINGS:
            return False
        return default

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self._values.items() if not self._is_missing(v)}


@dataclass(frozen=True)
class MetricSpec:
    """Static registry entry describing one statistic."""
    code: str
    label: str
    kind: MetricKind
    singular: str
    verb: str
    fields: Tuple[str, ...] = ()
    plural: Optional[str] = None
    formula: Optional[Callable[[StatRecord], Optional[float]]] = field(default=None, compare=False)
    decimals: int = 0
    unit: str = "count"  # count | percent | ratio
    zero_phrase: Optional[str] = None
    template: Optional[str] = None
    guard_message: Optional[str] = None
    rank_by: Optional[str] = None
    aggregate: str = "sum"  # sum | count
    clarification: Optional[str] = None
    entity_types: Tuple[EntityType, ...] = (EntityType.PLAYER, EntityType.TEAM)

    def noun(self, value: float) -> str:
        """Singular or plural display noun for a value."""
        if value == 1:
            return self.singular
        return self.plural or self.label


@dataclass(frozen=True)
class MetricAmbiguity:
    phrase: str
    chosen: str
    alternatives: Tuple[str, ...]


@dataclass(frozen=True)
class MetricResolution:
    specs: Tuple[MetricSpec, ...] = ()
    ambiguities: Tuple[MetricAmbiguity, ...] = ()

    @property
    def codes(self) -> Tuple[str, ...]:
        return tuple(spec.code for spec in self.specs)


@dataclass(frozen=True)
class RosterEntry:
    name: str
    entity_type: EntityType
    aliases: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Roster:
    """Known canonical player and team names."""
    entries: Tuple[RosterEntry, ...] = ()

    @property
    def players(self) -> List[RosterEntry]:
        return [e for e in self.entries if e.entity_type == EntityType.PLAYER]

    @property
    def teams(self) -> List[RosterEntry]:
        return [e for e in self.entries if e.entity_type == EntityType.TEAM]

    def find(self, name: str) -> Optional[RosterEntry]:
        folded = name.casefold().strip()
        for entry in self.entries:
            if entry.name.casefold() == folded:
                return entry
        return None


@dataclass(frozen=True)
class ResolvedEntity:
    raw_span: str
    canonical_name: str
    entity_type: EntityType
    match_confidence: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["entity_type"] = self.entity_type.value
        return data


@dataclass(frozen=True)
class AmbiguousName:
    term: str
    candidates: Tuple[str, ...]


@dataclass(frozen=True)
class EntityResolution:
    entities: Tuple[ResolvedEntity, ...] = ()
    unresolved: Tuple[str, ...] = ()
    ambiguous: Tuple[AmbiguousName, ...] = ()

    def of_type(self, entity_type: EntityType) -> List[ResolvedEntity]:
        return [e for e in self.entities if e.entity_type == entity_type]


@dataclass(frozen=True)
class RankingRequest:
    direction: RankDirection = RankDirection.HIGHEST
    limit: int = 10
    cohort_type: EntityType = EntityType.PLAYER


@dataclass(frozen=True)
class VisualizationSpec:
    kind: str  # table | chart
    data: List[Dict[str, Any]]
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "data": self.data, "config": self.config}


@dataclass(frozen=True)
class AnswerResult:
    """The externally visible answer contract."""
    answer: str
    confidence: ConfidenceTier
    visualization: Optional[VisualizationSpec] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "confidence": self.confidence.value,
            "visualization": self.visualization.to_dict() if self.visualization else None,
        }


@dataclass
class ProcessingDetails:
    """Intermediate analysis captured for one processed question."""
    question_analysis: QuestionAnalysis
    resolved_entities: List[ResolvedEntity] = field(default_factory=list)
    confidence: str = ConfidenceTier.LOW.value
    timings_ms: Dict[str, float] = field(default_factory=dict)
    state_path: List[str] = field(default_factory=list)
    used_fallback: bool = False
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_analysis": self.question_analysis.to_dict(),
            "resolved_entities": [e.to_dict() for e in self.resolved_entities],
            "confidence": self.confidence,
            "timings_ms": dict(self.timings_ms),
            "state_path": list(self.state_path),
            "used_fallback": self.used_fallback,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class QuestionOutcome:
    """Per-call result: the answer plus the details that produced it."""
    answer: AnswerResult
    details: ProcessingDetails


_ORDINALS = (
    ("1st", "first"), ("2nd", "second"), ("3rd", "third"), ("4th", "fourth"),
    ("5th", "fifth"), ("6th", "sixth"), ("7th", "seventh"), ("8th", "eighth"),
)


def _team_aliases() -> Dict[str, Tuple[str, ...]]:
    aliases: Dict[str, Tuple[str, ...]] = {}
    for number, (ordinal, word) in enumerate(_ORDINALS, start=1):
        aliases[f"{number}s"] = (
            f"{ordinal} team", f"{word} team", f"{ordinal} xi", f"{word} xi",
            f"{word}s",
        )
    return aliases


# Canonical club team names and the ways members refer to them.
DEFAULT_TEAM_ALIASES: Dict[str, Tuple[str, ...]] = _team_aliases()

COMPETITION_TYPES: Dict[str, Tuple[str, ...]] = {
    "League": ("league", "league games", "league matches", "in the league"),
    "Cup": ("cup", "cups", "cup games", "cup matches", "cup ties"),
    "Friendly": ("friendly", "friendlies", "friendly games", "friendly matches"),
}

CLUB_TERMINOLOGY: Dict[str, Any] = {
    "club_name": "the club",
    "season_start_month": 8,
    "max_entities_per_question": 3,
    "max_metrics_per_question": 3,
}
