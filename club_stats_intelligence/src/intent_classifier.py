"""
Rule-table intent classifier.

Rules are data: an ordered tuple of IntentRule entries evaluated by one
generic matcher. Precedence is (tier, -matched keyword count, table order),
so the outcome for a given normalized question never depends on anything
but the rule table.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from ..config.club_entities import DEFAULT_TEAM_ALIASES, IntentKind
from ..config.metrics import all_metric_phrases
from .normalizer import phrase_pattern

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntentRule:
    intent: IntentKind
    keywords: Tuple[str, ...]
    required: Tuple[str, ...] = ()
    forbidden: Tuple[str, ...] = ()
    tier: int = 0
    name: str = ""


@dataclass(frozen=True)
class IntentMatch:
    intent: IntentKind
    rule: Optional[IntentRule] = None
    matched_keywords: Tuple[str, ...] = ()


HISTORICAL_KEYWORDS = (
    "best season", "worst season", "most prolific season", "which season",
    "season by season", "each season", "every season", "per season",
    "club record", "all time record", "record for", "in a single season",
    "in one season", "history", "historically",
)

COMPARISON_KEYWORDS = (
    "compare", "comparison", "compared", "versus", "head to head",
    "better than", "worse than", "more than", "fewer than", "less than",
    "who has more", "who has fewer", "which of",
)

RANKING_KEYWORDS = (
    "most", "highest", "top", "best", "leading", "fewest", "least", "lowest",
    "which player", "which team", "rank", "ranking", "leaderboard",
)

CLUB_KEYWORDS = (
    "club", "whole club", "across the club", "all teams", "club wide",
    "registered players",
)


def default_intent_rules(team_aliases=None) -> Tuple[IntentRule, ...]:
    """Build the ordered rule table, pulling vocabulary from the registries."""
    team_aliases = team_aliases if team_aliases is not None else DEFAULT_TEAM_ALIASES
    team_keywords = ["team", "side", "squad"]
    for canonical, aliases in team_aliases.items():
        team_keywords.append(canonical.lower())
        team_keywords.extend(aliases)

    player_keywords = list(all_metric_phrases()) + ["stats", "statistics", "record", "i", "my", "me"]

    return (
        IntentRule(IntentKind.HISTORICAL, HISTORICAL_KEYWORDS, tier=0, name="historical"),
        IntentRule(IntentKind.COMPARISON, COMPARISON_KEYWORDS, tier=1, name="comparison"),
        IntentRule(IntentKind.RANKING, RANKING_KEYWORDS, tier=1, name="ranking"),
        IntentRule(IntentKind.TEAM, tuple(team_keywords), tier=2, name="team"),
        IntentRule(IntentKind.CLUB, CLUB_KEYWORDS, tier=2, name="club"),
        IntentRule(IntentKind.CLUB, ("players",), required=("how many",), tier=2, name="club_headcount"),
        IntentRule(IntentKind.PLAYER, tuple(player_keywords), tier=3, name="player"),
    )


class IntentClassifier:
    """Assigns an IntentKind to a normalized question string."""

    def __init__(self, rules: Optional[Sequence[IntentRule]] = None):
        self.rules: Tuple[IntentRule, ...] = tuple(rules) if rules is not None else default_intent_rules()

    @staticmethod
    def _present(phrases: Iterable[str], text: str) -> Tuple[str, ...]:
        return tuple(p for p in phrases if phrase_pattern(p).search(text))

    def match_rule(self, rule: IntentRule, text: str) -> Tuple[str, ...]:
        """Keywords of ``rule`` found in ``text``; empty when the rule does not apply."""
        if rule.forbidden and self._present(rule.forbidden, text):
            return ()
        if len(self._present(rule.required, text)) != len(rule.required):
            return ()
        return self._present(rule.keywords, text)

    def classify(self, text: str) -> IntentMatch:
        best: Optional[Tuple[Tuple[int, int, int], IntentRule, Tuple[str, ...]]] = None
        for index, rule in enumerate(self.rules):
            matched = self.match_rule(rule, text)
            if not matched:
                continue
            key = (rule.tier, -len(matched), index)
            if best is None or key < best[0]:
                best = (key, rule, matched)

        if best is None:
            logger.debug(f"No intent rule matched: '{text}'")
            return IntentMatch(IntentKind.UNCLASSIFIED)

        _, rule, matched = best
        logger.debug(f"Intent rule '{rule.name}' matched {list(matched)}")
        return IntentMatch(rule.intent, rule, matched)
