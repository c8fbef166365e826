"""Source package for Club Stats Intelligence.

Expose the pipeline stages at module level so imports are concise:

    from club_stats_intelligence.src import ClubQueryParser, FallbackStatsStore
"""

from .query_parser import ClubQueryParser, ParsedQuestion  # noqa: F401
from .query_planner import QueryPlanner, StoreUnavailable  # noqa: F401
from .answer_synthesizer import AnswerSynthesizer, SynthesisState  # noqa: F401
from .database import (  # noqa: F401
    FallbackStatsStore,
    QueryDescriptor,
    StatsStore,
    StoreError,
    StoreRefusal,
    StoreResponse,
    StoreTimeoutError,
    SupabaseStatsStore,
)

__all__ = [
    "ClubQueryParser",
    "ParsedQuestion",
    "QueryPlanner",
    "StoreUnavailable",
    "AnswerSynthesizer",
    "SynthesisState",
    "FallbackStatsStore",
    "QueryDescriptor",
    "StatsStore",
    "StoreError",
    "StoreRefusal",
    "StoreResponse",
    "StoreTimeoutError",
    "SupabaseStatsStore",
]
