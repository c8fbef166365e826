"""
Metric phrase resolution.

Phrases are matched longest first over the normalized question and each
match consumes its span, so "penalty conversion rate" wins over
"penalties" and "goals conceded" over "goals". Results keep the order in
which the metrics were mentioned.
"""

import logging
from typing import Dict, List, Mapping, Optional, Tuple

from ..config.club_entities import EntityType, MetricAmbiguity, MetricResolution, MetricSpec
from ..config.metrics import (
    AMBIGUOUS_METRIC_PHRASES,
    METRIC_REGISTRY,
    METRIC_SYNONYMS,
    WEAK_METRIC_SYNONYMS,
)
from .normalizer import phrase_pattern

logger = logging.getLogger(__name__)


class MetricResolver:
    def __init__(
        self,
        synonyms: Optional[Mapping[str, str]] = None,
        weak_synonyms: Optional[Mapping[str, str]] = None,
        ambiguous: Optional[Mapping[str, Dict[EntityType, Tuple[str, ...]]]] = None,
        registry: Optional[Mapping[str, MetricSpec]] = None,
    ):
        self.registry = dict(registry or METRIC_REGISTRY)
        self.synonyms = dict(synonyms or METRIC_SYNONYMS)
        self.weak_synonyms = dict(weak_synonyms or WEAK_METRIC_SYNONYMS)
        self.ambiguous = dict(ambiguous or AMBIGUOUS_METRIC_PHRASES)

        unknown = [c for c in list(self.synonyms.values()) + list(self.weak_synonyms.values()) if c not in self.registry]
        if unknown:
            raise ValueError(f"Synonyms reference unregistered metric codes: {sorted(set(unknown))}")

        phrases = list(self.synonyms) + list(self.ambiguous)
        self._phrases = sorted(phrases, key=lambda p: (-len(p), p))

    def resolve(self, text: str, subject_type: EntityType = EntityType.PLAYER) -> MetricResolution:
        hits = self._scan(text, self._phrases)
        if not hits:
            hits = self._scan(text, sorted(self.weak_synonyms, key=lambda p: (-len(p), p)))

        codes: List[str] = []
        ambiguities: List[MetricAmbiguity] = []
        for _, phrase in sorted(hits):
            if phrase in self.ambiguous:
                ambiguity = self._choose(phrase, subject_type)
                ambiguities.append(ambiguity)
                code = ambiguity.chosen
            else:
                code = self.synonyms.get(phrase) or self.weak_synonyms[phrase]
            if code not in codes:
                codes.append(code)

        specs = tuple(self.registry[c] for c in codes)
        if specs:
            logger.debug(f"Metrics resolved: {codes}")
        return MetricResolution(specs, tuple(ambiguities))

    def _choose(self, phrase: str, subject_type: EntityType) -> MetricAmbiguity:
        readings = self.ambiguous[phrase]
        ordered = readings.get(subject_type) or next(iter(readings.values()))
        logger.info(f"Ambiguous metric phrase '{phrase}': choosing {ordered[0]} over {list(ordered[1:])}")
        return MetricAmbiguity(phrase, ordered[0], tuple(ordered[1:]))

    @staticmethod
    def _scan(text: str, phrases: List[str]) -> List[Tuple[int, str]]:
        consumed: List[Tuple[int, int]] = []
        hits: List[Tuple[int, str]] = []
        for phrase in phrases:
            for match in phrase_pattern(phrase).finditer(text):
                start, end = match.start(), match.end()
                if any(start < c_end and end > c_start for c_start, c_end in consumed):
                    continue
                consumed.append((start, end))
                hits.append((start, phrase))
        return hits
