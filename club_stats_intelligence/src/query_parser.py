"""
Club question parser.

Runs the front half of the pipeline (normalize, classify, resolve
entities, resolve metrics, extract modifiers) and reconciles the
classified intent with what was actually resolved.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Tuple

from ..config.club_entities import (
    CLUB_TERMINOLOGY,
    EntityResolution,
    EntityType,
    IntentKind,
    MetricKind,
    MetricResolution,
    MetricSpec,
    QuestionAnalysis,
    QuestionContext,
    RankDirection,
    RankingRequest,
    ResolvedEntity,
    Roster,
)
from .entity_resolver import EntityResolver
from .intent_classifier import IntentClassifier, IntentMatch
from .metric_resolver import MetricResolver
from .modifier_extractor import ModifierExtractor
from .normalizer import NormalizedQuestion, normalize_question, phrase_pattern

_TOP_N = re.compile(r"\b(?:top|best|bottom) (\d{1,2})\b")
_LOWEST_WORDS = ("fewest", "least", "lowest", "worst", "bottom")
_TEAM_COHORT_WORDS = ("which team", "what team", "which of the teams", "which side")

TOO_MANY_ENTITIES = "too_many_entities"
TOO_MANY_METRICS = "too_many_metrics"


@dataclass(frozen=True)
class ParsedQuestion:
    context: QuestionContext
    normalized: NormalizedQuestion
    analysis: QuestionAnalysis
    intent_match: IntentMatch
    entity_resolution: EntityResolution
    metric_resolution: MetricResolution
    subjects: Tuple[ResolvedEntity, ...] = ()
    ranking: Optional[RankingRequest] = None
    clarification: Optional[str] = None

    @property
    def metric_specs(self) -> Tuple[MetricSpec, ...]:
        return self.metric_resolution.specs

    @property
    def subject_type(self) -> EntityType:
        if self.subjects:
            return self.subjects[0].entity_type
        if self.ranking is not None:
            return self.ranking.cohort_type
        return EntityType.PLAYER


class ClubQueryParser:
    def __init__(
        self,
        roster: Roster,
        today: Optional[Callable[[], date]] = None,
        ranking_limit: int = 10,
    ):
        self.logger = logging.getLogger(__name__)
        self.roster = roster
        self.ranking_limit = ranking_limit
        self.classifier = IntentClassifier()
        self.entity_resolver = EntityResolver(roster)
        self.metric_resolver = MetricResolver()
        self.modifier_extractor = ModifierExtractor(today=today)

    def parse_question(self, context: QuestionContext) -> ParsedQuestion:
        """Parse one question into its structured analysis."""
        self.logger.info(f"=== PARSING QUESTION: '{context.question}' ===")
        if not context.question or not context.question.strip():
            raise ValueError("Question cannot be empty")

        normalized = normalize_question(context.question)
        self.logger.debug(f"Normalized: '{normalized.text}'")

        intent_match = self.classifier.classify(normalized.text)
        self.logger.info(f"Classified intent: {intent_match.intent.value}")

        resolution = self.entity_resolver.resolve(
            normalized,
            context.user_context,
            allow_implicit_context=intent_match.intent == IntentKind.PLAYER,
        )
        players = resolution.of_type(EntityType.PLAYER)
        teams = resolution.of_type(EntityType.TEAM)
        self.logger.info(f"Resolved {len(players)} players and {len(teams)} teams")

        subject_type = EntityType.TEAM if teams and not players else EntityType.PLAYER
        metrics = self.metric_resolver.resolve(normalized.text, subject_type)
        self.logger.info(f"Metrics requested: {list(metrics.codes)}")

        modifiers = self.modifier_extractor.extract(normalized.text)
        if not modifiers.is_default:
            self.logger.info(f"Modifiers: {modifiers.describe()}")

        intent = self._reconcile_intent(intent_match.intent, players, teams, metrics)
        subjects = self._subjects(intent, players, teams)
        ranking = self._ranking_request(normalized.text, teams, players) if intent == IntentKind.RANKING else None

        clarification = None
        if len(subjects) > CLUB_TERMINOLOGY["max_entities_per_question"]:
            clarification = TOO_MANY_ENTITIES
        elif len(metrics.specs) > CLUB_TERMINOLOGY["max_metrics_per_question"]:
            clarification = TOO_MANY_METRICS

        analysis = QuestionAnalysis(
            type=intent,
            entities=tuple(e.canonical_name for e in subjects),
            metrics=metrics.codes,
            modifiers=modifiers,
        )
        self.logger.info(f"Final intent: {intent.value}, entities: {list(analysis.entities)}")
        return ParsedQuestion(
            context=context,
            normalized=normalized,
            analysis=analysis,
            intent_match=intent_match,
            entity_resolution=resolution,
            metric_resolution=metrics,
            subjects=tuple(subjects),
            ranking=ranking,
            clarification=clarification,
        )

    @staticmethod
    def _reconcile_intent(
        intent: IntentKind,
        players: List[ResolvedEntity],
        teams: List[ResolvedEntity],
        metrics: MetricResolution,
    ) -> IntentKind:
        if intent == IntentKind.UNCLASSIFIED:
            return intent
        if intent != IntentKind.HISTORICAL and any(s.kind == MetricKind.RANKED for s in metrics.specs):
            intent = IntentKind.RANKING

        if intent in (IntentKind.TEAM, IntentKind.CLUB) and players:
            intent = IntentKind.PLAYER
        elif intent == IntentKind.PLAYER and not players and teams:
            intent = IntentKind.TEAM

        if intent in (IntentKind.PLAYER, IntentKind.RANKING, IntentKind.COMPARISON) and len(players) >= 2:
            return IntentKind.COMPARISON
        if intent in (IntentKind.TEAM, IntentKind.COMPARISON) and not players and len(teams) >= 2:
            return IntentKind.COMPARISON
        if intent == IntentKind.COMPARISON:
            if players:
                return IntentKind.PLAYER
            if teams:
                return IntentKind.TEAM
        return intent

    @staticmethod
    def _subjects(
        intent: IntentKind, players: List[ResolvedEntity], teams: List[ResolvedEntity]
    ) -> List[ResolvedEntity]:
        """Entities the answer is about; remaining team mentions act as filters."""
        if players:
            return players
        if intent in (IntentKind.TEAM, IntentKind.COMPARISON, IntentKind.HISTORICAL):
            return teams
        return []

    def _ranking_request(
        self, text: str, teams: List[ResolvedEntity], players: List[ResolvedEntity]
    ) -> RankingRequest:
        direction = RankDirection.HIGHEST
        if any(phrase_pattern(w).search(text) for w in _LOWEST_WORDS):
            direction = RankDirection.LOWEST

        limit = self.ranking_limit
        top_n = _TOP_N.search(text)
        if top_n and int(top_n.group(1)) > 0:
            limit = int(top_n.group(1))

        cohort_type = EntityType.PLAYER
        if any(phrase_pattern(w).search(text) for w in _TEAM_COHORT_WORDS):
            cohort_type = EntityType.TEAM
        elif phrase_pattern("teams").search(text) and not players and not teams:
            cohort_type = EntityType.TEAM
        return RankingRequest(direction=direction, limit=limit, cohort_type=cohort_type)
