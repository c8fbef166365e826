"""Configuration subpackage for Club Stats Intelligence.

Expose the data model, the metric registry and engine settings.
"""

from .club_entities import (  # noqa: F401
    AnswerResult,
    ConfidenceTier,
    EntityType,
    IntentKind,
    MetricKind,
    ModifierSet,
    ProcessingDetails,
    QuestionAnalysis,
    QuestionContext,
    QuestionOutcome,
    StatRecord,
    TimeRange,
    VisualizationSpec,
    CLUB_TERMINOLOGY,
    DEFAULT_MODIFIERS,
)
from .metrics import MATCH_LEVEL_FIELDS, METRIC_REGISTRY, METRIC_SYNONYMS, get_metric  # noqa: F401
from .settings import ConfigurationError, EngineSettings  # noqa: F401

__all__ = [
    "AnswerResult",
    "ConfidenceTier",
    "EntityType",
    "IntentKind",
    "MetricKind",
    "ModifierSet",
    "ProcessingDetails",
    "QuestionAnalysis",
    "QuestionContext",
    "QuestionOutcome",
    "StatRecord",
    "TimeRange",
    "VisualizationSpec",
    "CLUB_TERMINOLOGY",
    "DEFAULT_MODIFIERS",
    "METRIC_REGISTRY",
    "METRIC_SYNONYMS",
    "get_metric",
    "ConfigurationError",
    "EngineSettings",
]
