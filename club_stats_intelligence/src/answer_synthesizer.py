"""
Answer synthesis.

A small state machine decides how well grounded an answer is:

    RESOLVED            entity, metric and data all present -> high
    PARTIALLY_RESOLVED  something missing, ambiguous or degraded -> medium
    UNRESOLVED          not understood, not found or no data -> low
    ANSWERED            terminal; every path ends here with an AnswerResult

Answers only ever use club vocabulary. Technical terms that might leak in
from names or error text are substituted before an answer leaves.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from ..config.club_entities import (
    AnswerResult,
    ConfidenceTier,
    EntityType,
    IntentKind,
    MetricSpec,
    ModifierSet,
    RankDirection,
    ResolvedEntity,
    VisualizationSpec,
)
from ..config.metrics import METRIC_REGISTRY
from .computation import (
    ComputedValue,
    best_season,
    cohort_values,
    compute_metric,
    effective_spec,
    format_count,
    format_value,
    rank_entities,
    rank_position,
    rounds_to_zero,
    season_breakdown,
)
from .query_parser import TOO_MANY_ENTITIES, ParsedQuestion
from .query_planner import PlanOutcome, RequestOutcome

logger = logging.getLogger(__name__)
unanswered_logger = logging.getLogger("club_stats_intelligence.unanswered")


class SynthesisState(Enum):
    RESOLVED = "resolved"
    PARTIALLY_RESOLVED = "partially_resolved"
    UNRESOLVED = "unresolved"
    ANSWERED = "answered"


STATE_CONFIDENCE = {
    SynthesisState.RESOLVED: ConfidenceTier.HIGH,
    SynthesisState.PARTIALLY_RESOLVED: ConfidenceTier.MEDIUM,
    SynthesisState.UNRESOLVED: ConfidenceTier.LOW,
}

# Storage and plumbing vocabulary that must never reach a club member.
TECHNICAL_VOCABULARY: Tuple[Tuple[str, str], ...] = (
    (r"\bneo4j\b", "club records"),
    (r"\bsupabase\b", "club records"),
    (r"\bredis\b", "club records"),
    (r"\bdatabases?\b", "club records"),
    (r"\bdb\b", "club records"),
    (r"\bplayer_match_stats\b", "club statistics"),
    (r"\bcypher\b", "question"),
    (r"\bsql\b", "question"),
    (r"\bquer(?:y|ies)\b", "question"),
    (r"\bconnections?\b", "access"),
    (r"\bdrivers?\b", "system"),
    (r"\bsessions?\b", "visit"),
    (r"\bnamespaces?\b", "section"),
    (r"\bnodes?\b", "records"),
    (r"\btime ?outs?\b", "delay"),
    (r"\bexceptions?\b", "problem"),
    (r"\bstack ?traces?\b", "details"),
)
_TECHNICAL_PATTERNS = [(re.compile(p, re.IGNORECASE), r) for p, r in TECHNICAL_VOCABULARY]

EXAMPLE_QUESTION = 'For example, "How many goals has Luke Bangs scored?"'
FALLBACK_CAVEAT = "This answer is based on the most recent club records available."


def substitute_vocabulary(text: str) -> str:
    for pattern, replacement in _TECHNICAL_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def possessive(name: str) -> str:
    return f"{name}'" if name.endswith("s") else f"{name}'s"


def ordinal(number: int) -> str:
    if 10 <= number % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")
    return f"{number}{suffix}"


def join_words(items: Sequence[str], conjunction: str = "and") -> str:
    items = list(items)
    if len(items) <= 1:
        return "".join(items)
    return f"{', '.join(items[:-1])} {conjunction} {items[-1]}"


def article(word: str) -> str:
    return "an" if word[:1].lower() in "aeiou" else "a"


def scope_suffix(modifiers: ModifierSet, include_teams: bool = True) -> str:
    """Words describing the filters, e.g. ' for the 3s in the 2023/24 season'."""
    parts: List[str] = []
    if include_teams and modifiers.teams:
        parts.append("for the " + join_words(list(modifiers.teams)))
    if modifiers.location is not None:
        parts.append(f"in {modifiers.location.value} games")
    if modifiers.competition_types:
        parts.append("in " + join_words([c.lower() for c in modifiers.competition_types]) + " matches")
    if modifiers.time_range is not None:
        label = modifiers.time_range.label
        parts.append(f"in {label}" if label.startswith("the ") else label)
    return (" " + " ".join(parts)) if parts else ""


def _slug(label: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", label.lower()).strip("_")


@dataclass
class _Draft:
    state: SynthesisState
    text: str
    visualization: Optional[VisualizationSpec] = None
    caveats: List[str] = field(default_factory=list)
    reason: str = ""


@dataclass
class Synthesis:
    answer: AnswerResult
    state_path: List[str]


class AnswerSynthesizer:
    def __init__(self, registry: Optional[Dict[str, MetricSpec]] = None):
        self.registry = registry or METRIC_REGISTRY

    # ---------- state machine ----------

    def synthesize(self, parsed: ParsedQuestion, outcome: PlanOutcome) -> Synthesis:
        draft = self._route(parsed, outcome)
        path = [draft.state.value]

        if draft.state == SynthesisState.RESOLVED and (draft.caveats or parsed.metric_resolution.ambiguities):
            draft.state = SynthesisState.PARTIALLY_RESOLVED
            path.append(draft.state.value)

        text = draft.text
        if draft.state != SynthesisState.UNRESOLVED:
            notes = list(draft.caveats) + [self._ambiguity_note(a) for a in parsed.metric_resolution.ambiguities]
            if notes:
                text = f"{text} {' '.join(notes)}"

        answer = self._finish(draft.state, text, draft.visualization, parsed.context.question, draft.reason)
        path.append(SynthesisState.ANSWERED.value)
        return Synthesis(answer, path)

    def not_understood(self, question: str, reason: str = "empty question") -> Synthesis:
        text = f"I'm sorry, I didn't quite catch that. Please ask a question about the club's statistics. {EXAMPLE_QUESTION}"
        answer = self._finish(SynthesisState.UNRESOLVED, text, None, question, reason)
        return Synthesis(answer, [SynthesisState.UNRESOLVED.value, SynthesisState.ANSWERED.value])

    def apology(self, question: str, reason: str) -> Synthesis:
        text = "I'm sorry, I couldn't look into that question just now. Please try again in a moment."
        answer = self._finish(SynthesisState.UNRESOLVED, text, None, question, reason)
        return Synthesis(answer, [SynthesisState.UNRESOLVED.value, SynthesisState.ANSWERED.value])

    def _finish(
        self,
        state: SynthesisState,
        text: str,
        visualization: Optional[VisualizationSpec],
        question: str,
        reason: str,
    ) -> AnswerResult:
        confidence = STATE_CONFIDENCE[state]
        if confidence == ConfidenceTier.LOW:
            unanswered_logger.warning(f"Unanswered question: '{question}' ({reason or 'unresolved'})")
        return AnswerResult(substitute_vocabulary(text), confidence, visualization)

    def _route(self, parsed: ParsedQuestion, outcome: PlanOutcome) -> _Draft:
        analysis = parsed.analysis
        resolution = parsed.entity_resolution
        specs = parsed.metric_specs

        if analysis.type == IntentKind.UNCLASSIFIED:
            return _Draft(
                SynthesisState.UNRESOLVED,
                "I'm sorry, I didn't understand that question. I can answer questions about "
                f"players, teams and the club's statistics. {EXAMPLE_QUESTION}",
                reason="classification miss",
            )

        if resolution.ambiguous:
            clash = resolution.ambiguous[0]
            return _Draft(
                SynthesisState.PARTIALLY_RESOLVED,
                f'I found more than one registered player matching "{clash.term}": '
                f"{join_words(list(clash.candidates), 'or')}. Which one did you mean?",
                reason="ambiguous entity",
            )

        needs_subject = analysis.type in (IntentKind.PLAYER, IntentKind.TEAM, IntentKind.COMPARISON)
        if resolution.unresolved and needs_subject and not parsed.subjects:
            term = resolution.unresolved[0]
            return _Draft(
                SynthesisState.UNRESOLVED,
                f'I couldn\'t find a player called "{term}" in the club records. '
                "Please check the spelling and try again.",
                reason="entity not found",
            )

        if parsed.clarification:
            if parsed.clarification == TOO_MANY_ENTITIES:
                text = "That's a lot to compare at once. Please ask about three or fewer players or teams at a time."
            else:
                text = ("Please ask about three or fewer statistics at a time, "
                        "for example goals, assists and appearances.")
            return _Draft(SynthesisState.PARTIALLY_RESOLVED, text, reason="clarification")

        if not specs:
            if parsed.subjects:
                name = self._display(parsed.subjects[0], start=False)
                text = (f"What would you like to know about {name}? "
                        "For example, goals, assists or appearances.")
            else:
                text = ("Which statistic would you like to know about? "
                        "For example, goals, assists or appearances.")
            return _Draft(SynthesisState.PARTIALLY_RESOLVED, text, reason="metric missing")

        if needs_subject and not parsed.subjects:
            kind = "team" if analysis.type == IntentKind.TEAM else "player"
            labels = join_words([effective_spec(s).label for s in specs])
            return _Draft(
                SynthesisState.PARTIALLY_RESOLVED,
                f"Which {kind} would you like to know about? I can tell you their {labels}.",
                reason="entity missing",
            )

        if not outcome.outcomes:
            return self._no_data(parsed)
        if outcome.all_failed:
            refusals = [f.reason for f in outcome.failures if f.refused]
            if refusals and len(refusals) == len(outcome.failures):
                return _Draft(
                    SynthesisState.UNRESOLVED,
                    f"I can't answer that from the club records available: {refusals[0]}.",
                    reason="not recorded",
                )
            return _Draft(
                SynthesisState.UNRESOLVED,
                "I'm currently unable to retrieve this information from the club records. "
                "Please try again later.",
                reason="store unavailable",
            )

        if analysis.type == IntentKind.RANKING:
            draft = self._ranking_answer(parsed, outcome.outcomes[0])
        elif analysis.type == IntentKind.CLUB:
            draft = self._club_answer(parsed, outcome.outcomes[0])
        elif analysis.type == IntentKind.HISTORICAL:
            draft = self._historical_answer(parsed, outcome)
        elif analysis.type == IntentKind.COMPARISON:
            draft = self._comparison_answer(parsed, outcome)
        else:
            draft = self._subject_answer(parsed, parsed.subjects[0], outcome.outcomes[0])

        if draft.state != SynthesisState.UNRESOLVED:
            if outcome.used_fallback:
                draft.caveats.append(FALLBACK_CAVEAT)
            if resolution.unresolved and needs_subject:
                draft.caveats.append(f'I couldn\'t find a player called "{resolution.unresolved[0]}".')
        return draft

    # ---------- per-intent answers ----------

    def _subject_answer(self, parsed: ParsedQuestion, subject: ResolvedEntity, outcome: RequestOutcome) -> _Draft:
        records = outcome.records
        specs = parsed.metric_specs
        computed = [(spec, compute_metric(spec, records)) for spec in specs]
        available = [(spec, value) for spec, value in computed if value.available]
        if not available:
            return self._no_data(parsed, subject)

        scope = scope_suffix(parsed.analysis.modifiers, include_teams=subject.entity_type == EntityType.PLAYER)
        subject_text, has = self._subject_words(subject)

        if len(available) == 1:
            spec, value = available[0]
            return _Draft(SynthesisState.RESOLVED, self._metric_sentence(spec, value, subject_text, has, scope))

        parts: List[str] = []
        caveats: List[str] = []
        rows: List[Dict[str, object]] = []
        for spec, value in available:
            eff = effective_spec(spec)
            rows.append({"statistic": eff.label, "value": value.value})
            if value.guarded:
                caveats.append(self._guard_sentence(value, subject_text, has))
            elif rounds_to_zero(eff, value.value):
                parts.append(f"no {eff.plural or eff.label}")
            else:
                parts.append(f"{format_value(eff, value.value)} {eff.noun(value.value)}")
        name = self._display(subject, start=False)
        text = f"Here are the statistics for {name}{scope}: {join_words(parts)}." if parts else ""
        visualization = VisualizationSpec(
            kind="table",
            data=rows,
            config={"columns": [{"key": "statistic", "label": "Statistic"}, {"key": "value", "label": "Value"}]},
        )
        draft = _Draft(SynthesisState.RESOLVED, " ".join(p for p in [text] + caveats if p), visualization)
        return draft

    def _comparison_answer(self, parsed: ParsedQuestion, outcome: PlanOutcome) -> _Draft:
        specs = parsed.metric_specs
        primary = effective_spec(specs[0])
        caveats: List[str] = []
        guard_notes: List[str] = []
        values: Dict[str, float] = {}
        rows: List[Dict[str, object]] = []
        subjects = {s.canonical_name: s for s in parsed.subjects}

        for subject in parsed.subjects:
            result = outcome.for_subject(subject.canonical_name)
            name = self._display(subject, start=False)
            if result is None or not result.ok:
                caveats.append(f"I couldn't retrieve the figures for {name} right now.")
                continue
            row: Dict[str, object] = {"name": subject.canonical_name}
            for spec in specs:
                computed = compute_metric(spec, result.records)
                eff = effective_spec(spec)
                row[_slug(eff.label)] = computed.value
                if eff.code == primary.code:
                    if computed.guarded:
                        subject_text, has = self._subject_words(subject)
                        guard_notes.append(self._guard_sentence(computed, subject_text, has))
                    elif computed.available and computed.value is not None:
                        values[subject.canonical_name] = computed.value
            rows.append(row)

        if not values:
            if caveats and len(caveats) == len(parsed.subjects) and not rows:
                return _Draft(
                    SynthesisState.UNRESOLVED,
                    "I'm currently unable to retrieve this information from the club records. "
                    "Please try again later.",
                    reason="store unavailable",
                )
            if guard_notes:
                return _Draft(SynthesisState.RESOLVED, " ".join(guard_notes), caveats=caveats)
            return self._no_data(parsed)

        ranked = rank_entities(values)
        scope = scope_suffix(parsed.analysis.modifiers)
        leader = ranked[0]
        tied = [r for r in ranked if r.value == leader.value]
        tied_names = join_words([self._display(subjects[r.name], start=i == 0) for i, r in enumerate(tied)])
        nothing_recorded = rounds_to_zero(primary, leader.value)

        if len(ranked) == 1:
            subject_text, has = self._subject_words(subjects[leader.name])
            text = self._metric_sentence(primary, ComputedValue(leader.value), subject_text, has, scope)
        elif nothing_recorded:
            text = f"{tied_names} have not recorded any {primary.plural or primary.label}{scope}."
        elif len(tied) == len(ranked):
            text = (f"{tied_names} are level on {format_value(primary, leader.value)} "
                    f"{primary.noun(leader.value)}{scope}.")
        else:
            if len(tied) > 1:
                opener = f"{tied_names} lead the way"
            elif subjects[leader.name].entity_type == EntityType.TEAM:
                opener = f"{tied_names} lead"
            else:
                opener = f"{tied_names} leads"
            behind = [
                f"{self._display(subjects[r.name], start=False)} ({self._short_value(primary, r.value)})"
                for r in ranked if r.value != leader.value
            ]
            text = (f"{opener} with {format_value(primary, leader.value)} {primary.noun(leader.value)}{scope}, "
                    f"ahead of {join_words(behind)}.")
        if primary.clarification and len(ranked) > 1 and not nothing_recorded:
            text = f"{text[:-1]} {primary.clarification}."
        if guard_notes:
            text = " ".join([text] + guard_notes)

        if all(s.entity_type == EntityType.TEAM for s in parsed.subjects):
            columns = [{"key": "name", "label": "Team"}]
        else:
            columns = [{"key": "name", "label": "Player"}]
        for spec in specs:
            eff = effective_spec(spec)
            columns.append({"key": _slug(eff.label), "label": eff.label.capitalize()})
        visualization = VisualizationSpec(kind="table", data=rows, config={"columns": columns})
        return _Draft(SynthesisState.RESOLVED, text, visualization, caveats=caveats)

    def _ranking_answer(self, parsed: ParsedQuestion, outcome: RequestOutcome) -> _Draft:
        spec = parsed.metric_specs[0]
        eff = effective_spec(spec)
        ranking = parsed.ranking
        direction = ranking.direction if ranking else RankDirection.HIGHEST
        limit = ranking.limit if ranking else 10
        cohort_type = ranking.cohort_type if ranking else EntityType.PLAYER
        key = "team" if cohort_type == EntityType.TEAM else "name"
        member = "team" if cohort_type == EntityType.TEAM else "player"

        values = cohort_values(eff, outcome.records, key=key)
        rows = rank_entities(values, direction, limit)
        if not rows:
            return self._no_data(parsed)

        scope = scope_suffix(parsed.analysis.modifiers)
        top = rows[0]
        top_name = f"the {top.name}" if cohort_type == EntityType.TEAM else top.name
        if direction == RankDirection.HIGHEST and rounds_to_zero(eff, top.value):
            text = f"No {member} has recorded any {eff.plural or eff.label}{scope} yet."
            return _Draft(SynthesisState.RESOLVED, text)

        value_text = self._amount(eff, top.value)
        if spec.code == "TopScorer":
            text = f"The club's top scorer{scope} is {top_name} with {value_text}"
        elif spec.code == "TopAssister":
            text = f"The club's top assister{scope} is {top_name} with {value_text}"
        else:
            adjective = "highest" if direction == RankDirection.HIGHEST else "lowest"
            if eff.unit == "count":
                adjective = "most" if direction == RankDirection.HIGHEST else "fewest"
            text = f"The {member} with the {adjective} {eff.label}{scope} is {top_name} with {value_text}"
        if eff.clarification:
            text += f" {eff.clarification}"
        text += "."
        if len(rows) > 1:
            text += f" Here are the top {len(rows)} {member}s:"

        for subject in parsed.subjects:
            position = rank_position(values, subject.canonical_name, direction)
            if position is not None:
                text += f" {subject.canonical_name} is ranked {ordinal(position)} of {len(values)}."
            else:
                text += f" {subject.canonical_name} has no {eff.label} recorded{scope}."

        visualization = VisualizationSpec(
            kind="table",
            data=[{"rank": r.rank, "name": r.name, "value": r.value} for r in rows],
            config={"columns": [
                {"key": "rank", "label": "Rank"},
                {"key": "name", "label": member.capitalize()},
                {"key": "value", "label": eff.label.capitalize()},
            ]},
        )
        return _Draft(SynthesisState.RESOLVED, text, visualization)

    def _club_answer(self, parsed: ParsedQuestion, outcome: RequestOutcome) -> _Draft:
        scope = scope_suffix(parsed.analysis.modifiers)
        sentences: List[str] = []
        for spec in parsed.metric_specs:
            computed = compute_metric(spec, outcome.records)
            if not computed.available:
                continue
            sentences.append(self._metric_sentence(spec, computed, "The club", "has", scope))
        if not sentences:
            return self._no_data(parsed)
        return _Draft(SynthesisState.RESOLVED, " ".join(sentences))

    def _historical_answer(self, parsed: ParsedQuestion, outcome: PlanOutcome) -> _Draft:
        eff = effective_spec(parsed.metric_specs[0])
        direction = RankDirection.LOWEST if "worst" in parsed.normalized.tokens else RankDirection.HIGHEST
        adjective = "best" if direction == RankDirection.HIGHEST else "quietest"

        if not parsed.subjects:
            result = outcome.outcomes[0]
            best = best_season(eff, result.records, direction)
            if best is None:
                return self._no_data(parsed)
            name, season, value = best
            if direction == RankDirection.LOWEST:
                text = (f"The quietest single season for {eff.label} was {season}, "
                        f"when {name} recorded {self._amount(eff, value)}.")
            elif rounds_to_zero(eff, value):
                text = f"No player has recorded any {eff.plural or eff.label} in a single season yet."
            else:
                text = (f"The club record for {eff.label} in a single season is "
                        f"{format_value(eff, value)}, set by {name} in {season}.")
            return _Draft(SynthesisState.RESOLVED, text)

        subject = parsed.subjects[0]
        result = outcome.for_subject(subject.canonical_name)
        if result is None or not result.ok:
            return _Draft(
                SynthesisState.UNRESOLVED,
                "I'm currently unable to retrieve this information from the club records. Please try again later.",
                reason="store unavailable",
            )
        breakdown = season_breakdown(eff, result.records)
        if not breakdown:
            return self._no_data(parsed, subject)

        values = dict(breakdown)
        top = rank_entities(values, direction, limit=1)[0]
        name = self._display(subject, start=True)
        text = (f"{possessive(name)} {adjective} season for {eff.label} was {top.name} "
                f"with {self._short_value(eff, top.value)}.")
        if len(breakdown) > 1:
            text += " Here is the season-by-season breakdown:"
        visualization = VisualizationSpec(
            kind="chart",
            data=[{"season": season, "value": value} for season, value in breakdown],
            config={
                "chart_type": "bar",
                "x": "season",
                "y": "value",
                "columns": [{"key": "season", "label": "Season"}, {"key": "value", "label": eff.label.capitalize()}],
            },
        )
        return _Draft(SynthesisState.RESOLVED, text, visualization)

    # ---------- phrasing helpers ----------

    def _no_data(self, parsed: ParsedQuestion, subject: Optional[ResolvedEntity] = None) -> _Draft:
        labels = join_words([effective_spec(s).label for s in parsed.metric_specs]) or "statistics"
        scope = scope_suffix(parsed.analysis.modifiers)
        target = f" for {self._display(subject, start=False)}" if subject else ""
        return _Draft(
            SynthesisState.UNRESOLVED,
            f"I'm sorry, I couldn't find any {labels} recorded{target}{scope} in the club records.",
            reason="no data",
        )

    def _metric_sentence(self, spec: MetricSpec, computed: ComputedValue, subject: str, has: str, scope: str) -> str:
        eff = effective_spec(spec)
        if computed.guarded:
            return self._guard_sentence(computed, subject, has)

        values = {
            "subject": subject,
            "has": has,
            "verb": eff.verb,
            "label": eff.label,
            "singular": eff.singular,
            "article": article(eff.singular),
        }
        values.update({k: format_count(v) for k, v in computed.components.items()})

        if computed.value is None or rounds_to_zero(eff, computed.value):
            template = eff.zero_phrase or "{subject} {has} not {verb} {article} {singular}"
            return template.format(**values) + scope + "."

        values["value"] = format_value(eff, computed.value)
        values["noun"] = eff.noun(computed.value)
        sentence = (eff.template or "{subject} {has} {verb} {value} {noun}").format(**values) + scope
        if eff.clarification:
            sentence += f" {eff.clarification}"
        return sentence + "."

    @staticmethod
    def _guard_sentence(computed: ComputedValue, subject: str, has: str) -> str:
        values = {"subject": subject, "has": has}
        values.update({k: format_count(v) for k, v in computed.components.items()})
        return computed.guard_message.format(**values) + "."

    def _ambiguity_note(self, ambiguity) -> str:
        chosen = self.registry[ambiguity.chosen].label
        alternatives = join_words([self.registry[c].label for c in ambiguity.alternatives], "or")
        return (f'I\'ve taken "{ambiguity.phrase}" to mean {chosen}. '
                f"If you meant {alternatives}, please ask about those directly.")

    @staticmethod
    def _short_value(spec: MetricSpec, value: float) -> str:
        return "none" if rounds_to_zero(spec, value) else format_value(spec, value)

    @staticmethod
    def _amount(spec: MetricSpec, value: float) -> str:
        """Value with its noun, e.g. "6 goals" or "no red cards"."""
        if rounds_to_zero(spec, value):
            return f"no {spec.noun(0)}"
        return f"{format_value(spec, value)} {spec.noun(value)}"

    @staticmethod
    def _display(entity: ResolvedEntity, start: bool) -> str:
        if entity.entity_type == EntityType.TEAM:
            return f"{'The' if start else 'the'} {entity.canonical_name}"
        return entity.canonical_name

    def _subject_words(self, entity: ResolvedEntity) -> Tuple[str, str]:
        if entity.entity_type == EntityType.TEAM:
            return self._display(entity, start=True), "have"
        return entity.canonical_name, "has"
