"""
Entity resolution against the club roster.

Resolution order:
1. the caller's user context, when the question refers to it;
2. full roster names and team aliases, longest first;
3. single first-name/surname tokens that identify exactly one player;
4. fuzzy matching of capitalized name spans the user typed.

Tokens shared by several players are reported as ambiguous and never guessed.
"""

import difflib
import logging
import re
from typing import Dict, List, Optional, Set, Tuple

from ..config.club_entities import (
    COMPETITION_TYPES,
    DEFAULT_TEAM_ALIASES,
    AmbiguousName,
    EntityResolution,
    EntityType,
    ResolvedEntity,
    Roster,
    RosterEntry,
)
from ..config.metrics import all_metric_phrases
from .normalizer import NormalizedQuestion, expand_abbreviations, normalize_text, phrase_pattern

logger = logging.getLogger(__name__)

FIRST_PERSON = frozenset({"i", "me", "my", "mine", "myself"})

# Words that look like names when capitalized but are not.
COMMON_WORDS = frozenset({
    "how", "what", "who", "whose", "which", "when", "where", "why", "is", "are",
    "was", "were", "has", "have", "had", "does", "do", "did", "can", "could",
    "will", "would", "tell", "show", "give", "list", "compare", "the", "a", "an",
    "in", "for", "of", "and", "or", "versus", "this", "that", "last", "season",
    "seasons", "club", "team", "teams", "players", "player", "total", "many",
    "much", "since", "between", "at", "on", "home", "away", "please", "all",
    "time", "ever", "overall", "career", "year", "years", "january", "february",
    "march", "april", "may", "june", "july", "august", "september", "october",
    "november", "december", "stats", "statistics", "hi", "hello", "hey", "to",
    "me", "my", "i", "premier", "division",
})

_CAPITALIZED_RUN = re.compile(r"[A-Z][\w'\-]*(?:\s+[A-Z][\w'\-]*)*")
_TOKEN = re.compile(r"[\w/'-]+")
_POSSESSIVE_SUFFIX = re.compile(r"'s?$")


def _match_key(name: str) -> str:
    return " ".join(expand_abbreviations(normalize_text(name).split()))


def _vocabulary_words() -> Set[str]:
    words: Set[str] = set(COMMON_WORDS)
    for phrase in all_metric_phrases():
        words.update(phrase.split())
    for canonical, aliases in DEFAULT_TEAM_ALIASES.items():
        words.add(canonical)
        for alias in aliases:
            words.update(alias.split())
    for phrases in COMPETITION_TYPES.values():
        for phrase in phrases:
            words.update(phrase.split())
    return words


class EntityResolver:
    """Resolves player and team mentions to canonical roster names."""

    def __init__(self, roster: Roster, fuzzy_cutoff: float = 0.85):
        self.roster = roster
        self.fuzzy_cutoff = fuzzy_cutoff
        self._vocabulary = _vocabulary_words()

        # (match key, entry), longest key first
        keys: List[Tuple[str, RosterEntry]] = []
        for entry in roster.entries:
            names = {entry.name, *entry.aliases}
            if entry.entity_type == EntityType.TEAM:
                names.update(DEFAULT_TEAM_ALIASES.get(entry.name, ()))
            for name in names:
                key = _match_key(name)
                if key:
                    keys.append((key, entry))
        self._full_keys = sorted(keys, key=lambda item: (-len(item[0]), item[0]))

        self._player_keys: Dict[str, RosterEntry] = {
            _match_key(e.name): e for e in roster.players
        }
        self._token_index: Dict[str, Set[str]] = {}
        for key, entry in self._player_keys.items():
            for token in key.split():
                if len(token) > 1 and token not in self._vocabulary:
                    self._token_index.setdefault(token, set()).add(entry.name)

        logger.info(
            f"Entity resolver loaded {len(roster.players)} players and "
            f"{len(roster.teams)} teams ({len(self._full_keys)} match keys)"
        )

    def resolve(
        self,
        question: NormalizedQuestion,
        user_context: Optional[str] = None,
        allow_implicit_context: bool = True,
    ) -> EntityResolution:
        """
        Resolve entity mentions in a normalized question.

        Args:
            question: Output of the normalizer
            user_context: Optional pre-selected player name
            allow_implicit_context: Apply ``user_context`` to questions that
                name nobody (only sensible for player-statistic questions)

        Returns:
            EntityResolution with resolved, unresolved and ambiguous names
        """
        text = question.text
        consumed: List[Tuple[int, int]] = []
        # (position in the question, entity)
        found: List[Tuple[int, ResolvedEntity]] = []
        ambiguous: List[AmbiguousName] = []

        def overlaps(start: int, end: int) -> bool:
            return any(start < c_end and end > c_start for c_start, c_end in consumed)

        # Full names and team aliases, longest first
        for key, entry in self._full_keys:
            for match in phrase_pattern(key).finditer(text):
                if overlaps(match.start(), match.end()):
                    continue
                consumed.append((match.start(), match.end()))
                found.append((match.start(), ResolvedEntity(match.group(0), entry.name, entry.entity_type, 1.0)))

        # Unique single tokens, only where no full name already claimed the text
        for match in _TOKEN.finditer(text):
            token = match.group(0)
            if overlaps(match.start(), match.end()):
                continue
            candidates = self._token_index.get(token)
            if not candidates:
                continue
            consumed.append((match.start(), match.end()))
            if len(candidates) == 1:
                name = next(iter(candidates))
                found.append((match.start(), ResolvedEntity(token, name, EntityType.PLAYER, 0.8)))
            else:
                logger.info(f"Rejected ambiguous name '{token}': {sorted(candidates)}")
                ambiguous.append(AmbiguousName(token.title(), tuple(sorted(candidates))))

        covered = {t for start, end in consumed for t in text[start:end].split()}
        unresolved: List[str] = []
        for span in self._name_spans(question.original):
            span_key = _match_key(span)
            if set(span_key.split()) <= covered:
                continue
            fuzzy = self._fuzzy_player(span, span_key)
            if fuzzy is not None:
                position = text.find(span_key.split()[0])
                found.append((position if position >= 0 else len(text), fuzzy))
                covered.update(span_key.split())
            else:
                unresolved.append(span)

        context_entity = self._user_context_entity(
            question, user_context, [e for _, e in found], unresolved, ambiguous, allow_implicit_context
        )
        if context_entity is not None:
            found.insert(0, (-1, context_entity))

        entities = self._rank_and_dedupe(found)
        logger.debug(
            f"Resolved entities {[(e.canonical_name, e.match_confidence) for e in entities]}, "
            f"unresolved={unresolved}, ambiguous={[a.term for a in ambiguous]}"
        )
        return EntityResolution(tuple(entities), tuple(unresolved), tuple(ambiguous))

    def _name_spans(self, original: str) -> List[str]:
        """Capitalized word runs in the raw question with non-name words trimmed off."""
        spans: List[str] = []
        for run in _CAPITALIZED_RUN.findall(original or ""):
            current: List[str] = []
            for word in run.split():
                if _match_key(word) in self._vocabulary or not _match_key(word):
                    if current:
                        spans.append(" ".join(current))
                    current = []
                else:
                    current.append(_POSSESSIVE_SUFFIX.sub("", word))
            if current:
                spans.append(" ".join(current))
        return spans

    def _fuzzy_player(self, span: str, span_key: str) -> Optional[ResolvedEntity]:
        matches = difflib.get_close_matches(span_key, list(self._player_keys), n=1, cutoff=self.fuzzy_cutoff)
        if not matches:
            return None
        entry = self._player_keys[matches[0]]
        ratio = difflib.SequenceMatcher(None, span_key, matches[0]).ratio()
        logger.info(f"Fuzzy matched '{span_key}' to '{entry.name}' ({ratio:.2f})")
        return ResolvedEntity(span, entry.name, EntityType.PLAYER, round(ratio, 2))

    def _user_context_entity(
        self,
        question: NormalizedQuestion,
        user_context: Optional[str],
        found: List[ResolvedEntity],
        unresolved: List[str],
        ambiguous: List[AmbiguousName],
        allow_implicit: bool,
    ) -> Optional[ResolvedEntity]:
        if not user_context or not user_context.strip():
            return None
        entry = self.roster.find(user_context)
        if entry is None or entry.entity_type != EntityType.PLAYER:
            logger.debug(f"User context '{user_context}' is not a registered player")
            return None

        key = _match_key(entry.name)
        if key in question.text:
            return ResolvedEntity(user_context, entry.name, EntityType.PLAYER, 1.0)
        if FIRST_PERSON.intersection(question.tokens):
            return ResolvedEntity(user_context, entry.name, EntityType.PLAYER, 1.0)
        players_named = any(e.entity_type == EntityType.PLAYER for e in found)
        if allow_implicit and not players_named and not unresolved and not ambiguous:
            return ResolvedEntity(user_context, entry.name, EntityType.PLAYER, 1.0)
        return None

    @staticmethod
    def _rank_and_dedupe(found: List[Tuple[int, ResolvedEntity]]) -> List[ResolvedEntity]:
        """Highest confidence first; equal confidence keeps the order of mention."""
        ordered = sorted(found, key=lambda item: (-item[1].match_confidence, item[0]))
        seen: Set[str] = set()
        unique: List[ResolvedEntity] = []
        for _, entity in ordered:
            if entity.canonical_name in seen:
                continue
            seen.add(entity.canonical_name)
            unique.append(entity)
        return unique
