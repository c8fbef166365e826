"""Club Stats Intelligence package.

Expose the primary public APIs at the top level so downstream code and tests
can simply do::

    from club_stats_intelligence import ClubStatsIntelligence, QuestionContext
"""

from .config.club_entities import (  # noqa: F401
    AnswerResult,
    ConfidenceTier,
    ProcessingDetails,
    QuestionAnalysis,
    QuestionContext,
    QuestionOutcome,
)
from .config.settings import ConfigurationError, EngineSettings  # noqa: F401
from .main import ClubStatsIntelligence  # noqa: F401

__all__ = [
    "AnswerResult",
    "ConfidenceTier",
    "ProcessingDetails",
    "QuestionAnalysis",
    "QuestionContext",
    "QuestionOutcome",
    "ConfigurationError",
    "EngineSettings",
    "ClubStatsIntelligence",
]

__version__ = "0.1.0"
