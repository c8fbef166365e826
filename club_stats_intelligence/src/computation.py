"""
Pure computations over retrieved records.

Nothing here mutates its inputs or touches I/O: records go in, new values
come out. Derived formulas report a zero denominator through
``ComputedValue.guard_message`` rather than NaN or Infinity.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..config.club_entities import MetricKind, MetricSpec, RankDirection, StatRecord
from ..config.metrics import METRIC_COMPONENTS, METRIC_REGISTRY

_IDENTITY = ("name", "team", "season", "match_id")


@dataclass(frozen=True)
class ComputedValue:
    value: Optional[float]
    available: bool = True
    guard_message: Optional[str] = None
    components: Mapping[str, float] = field(default_factory=dict)

    @property
    def guarded(self) -> bool:
        return self.guard_message is not None


UNAVAILABLE = ComputedValue(value=None, available=False)


@dataclass(frozen=True)
class RankedRow:
    rank: int
    name: str
    value: float


def effective_spec(spec: MetricSpec, registry: Optional[Mapping[str, MetricSpec]] = None) -> MetricSpec:
    """The metric whose values are actually computed (ranked specs rank another metric)."""
    if spec.kind == MetricKind.RANKED and spec.rank_by:
        return (registry or METRIC_REGISTRY)[spec.rank_by]
    return spec


def aggregate_records(records: Sequence[StatRecord]) -> StatRecord:
    """Sum every numeric field across records into a new record."""
    totals: Dict[str, float] = {}
    for record in records:
        for key in record.keys():
            if key in _IDENTITY or not record.has(key):
                continue
            totals[key] = totals.get(key, 0.0) + record.get_number(key)
    return StatRecord(totals)


def group_by(records: Iterable[StatRecord], key: str) -> Dict[str, List[StatRecord]]:
    groups: Dict[str, List[StatRecord]] = {}
    for record in records:
        name = record.get_str(key)
        if name:
            groups.setdefault(name, []).append(record)
    return groups


def compute_metric(spec: MetricSpec, records: Sequence[StatRecord]) -> ComputedValue:
    """Compute one metric over a subject's records."""
    spec = effective_spec(spec)
    if not records or not all(any(r.has(f) for r in records) for f in spec.fields):
        return UNAVAILABLE

    if spec.aggregate == "count":
        names = {r.get_str(spec.fields[0]) for r in records if r.has(spec.fields[0])}
        return ComputedValue(value=float(len(names)))

    total = aggregate_records(records)
    components = (
        METRIC_COMPONENTS[spec.code](total)
        if spec.code in METRIC_COMPONENTS
        else {f: total.get_number(f) for f in spec.fields}
    )

    if spec.kind == MetricKind.DERIVED and spec.formula is not None:
        value = spec.formula(total)
        if value is None:
            return ComputedValue(
                value=None,
                guard_message=spec.guard_message or "{subject} {has} no recorded figures for this yet",
                components=components,
            )
        return ComputedValue(value=float(value), components=components)

    return ComputedValue(value=total.get_number(spec.fields[0]), components=components)


def cohort_values(spec: MetricSpec, records: Sequence[StatRecord], key: str = "name") -> Dict[str, float]:
    """Metric value per cohort member; guarded or unavailable members are left out."""
    values: Dict[str, float] = {}
    for name, group in group_by(records, key).items():
        computed = compute_metric(spec, group)
        if computed.available and computed.value is not None:
            values[name] = computed.value
    return values


def rank_entities(
    values: Mapping[str, float],
    direction: RankDirection = RankDirection.HIGHEST,
    limit: Optional[int] = None,
) -> List[RankedRow]:
    """Sort by value (descending unless LOWEST), ties broken alphabetically by name."""
    sign = -1 if direction == RankDirection.HIGHEST else 1
    ordered = sorted(values.items(), key=lambda item: (sign * item[1], item[0]))
    if limit is not None:
        ordered = ordered[:limit]
    return [RankedRow(rank=i, name=name, value=value) for i, (name, value) in enumerate(ordered, start=1)]


def rank_position(values: Mapping[str, float], name: str,
                  direction: RankDirection = RankDirection.HIGHEST) -> Optional[int]:
    for row in rank_entities(values, direction):
        if row.name == name:
            return row.rank
    return None


def season_breakdown(spec: MetricSpec, records: Sequence[StatRecord]) -> List[Tuple[str, float]]:
    """(season, value) pairs in season order."""
    values = cohort_values(spec, records, key="season")
    return sorted(values.items())


def best_season(
    spec: MetricSpec,
    records: Sequence[StatRecord],
    direction: RankDirection = RankDirection.HIGHEST,
) -> Optional[Tuple[str, str, float]]:
    """(name, season, value) of the best single season across the records."""
    values: Dict[str, float] = {}
    seasons: Dict[str, Tuple[str, str]] = {}
    for name, group in group_by(records, "name").items():
        for season, season_records in group_by(group, "season").items():
            computed = compute_metric(spec, season_records)
            if computed.available and computed.value is not None:
                label = f"{name} ({season})"
                values[label] = computed.value
                seasons[label] = (name, season)
    ranked = rank_entities(values, direction, limit=1)
    if not ranked:
        return None
    name, season = seasons[ranked[0].name]
    return name, season, ranked[0].value


def rounds_to_zero(spec: MetricSpec, value: float) -> bool:
    return round(value, effective_spec(spec).decimals) == 0


def format_value(spec: MetricSpec, value: float) -> str:
    """Display a computed value with the metric's precision and unit."""
    spec = effective_spec(spec)
    decimals = spec.decimals
    if spec.unit == "percent":
        text = f"{value:.{decimals}f}%"
    else:
        text = f"{value:,.{decimals}f}"
    return text


def format_count(value: float) -> str:
    return f"{value:,.0f}"
