"""Per-call stage timings and the ProcessingDetails they end up in."""

import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from ..config.club_entities import (
    DEFAULT_MODIFIERS,
    AnswerResult,
    IntentKind,
    ProcessingDetails,
    QuestionAnalysis,
    ResolvedEntity,
)


class DiagnosticsRecorder:
    def __init__(self) -> None:
        self._started = time.perf_counter()
        self.timings_ms: Dict[str, float] = {}
        self.notes: List[str] = []

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timings_ms[name] = round((time.perf_counter() - start) * 1000, 3)

    def note(self, message: str) -> None:
        self.notes.append(message)

    def build(
        self,
        answer: AnswerResult,
        analysis: Optional[QuestionAnalysis] = None,
        entities: Optional[List[ResolvedEntity]] = None,
        state_path: Optional[List[str]] = None,
        used_fallback: bool = False,
    ) -> ProcessingDetails:
        timings = dict(self.timings_ms)
        timings["total"] = round((time.perf_counter() - self._started) * 1000, 3)
        return ProcessingDetails(
            question_analysis=analysis or QuestionAnalysis(IntentKind.UNCLASSIFIED, (), (), DEFAULT_MODIFIERS),
            resolved_entities=list(entities or []),
            confidence=answer.confidence.value,
            timings_ms=timings,
            state_path=list(state_path or []),
            used_fallback=used_fallback,
            notes=list(self.notes),
        )
