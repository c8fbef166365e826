"""
Main entry point for Club Stats Intelligence.

End-to-end flow for one question:
Question → Parse → Plan → Retrieve (concurrent, with timeout + fallback) → Answer
"""

import argparse
import asyncio
import logging
from datetime import date
from typing import Callable, List, Optional

from .config.club_entities import AnswerResult, ProcessingDetails, QuestionContext, QuestionOutcome, Roster
from .config.settings import EngineSettings
from .src.answer_synthesizer import AnswerSynthesizer
from .src.cached_database import CachedStatsStore
from .src.database import (
    FallbackStatsStore,
    RosterProvider,
    StaticRosterProvider,
    StatsStore,
    SupabaseRosterProvider,
    SupabaseStatsStore,
    build_roster,
)
from .src.diagnostics import DiagnosticsRecorder
from .src.query_cache import create_query_cache
from .src.query_parser import ClubQueryParser
from .src.query_planner import PlanOutcome, QueryPlanner

logger = logging.getLogger(__name__)


class ClubStatsIntelligence:
    """
    Orchestrates the question pipeline for one club.

    ``last_details`` holds the details of the most recently finished call.
    It is a single shared slot: with concurrent calls it reflects whichever
    finished last. Use ``answer_question`` for per-call details.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        store: Optional[StatsStore] = None,
        fallback_store: Optional[FallbackStatsStore] = None,
        roster_provider: Optional[RosterProvider] = None,
        today: Optional[Callable[[], date]] = None,
        use_fallback: bool = True,
        require_live_store: bool = False,
    ):
        """
        Args:
            settings: Engine settings (read from the environment if omitted)
            store: Statistics store; built from settings if omitted
            fallback_store: Static dataset used when the store is unavailable
            roster_provider: Source of registered player and team names
            today: Clock used to resolve "this season" style phrases
            use_fallback: Load the bundled fallback dataset when none is given
            require_live_store: Raise ConfigurationError without Supabase credentials
        """
        self.settings = settings or EngineSettings.from_env()
        if require_live_store:
            self.settings.require_live_store()

        if fallback_store is None and use_fallback:
            fallback_store = FallbackStatsStore()
        self.fallback_store = fallback_store

        self._supabase_client = None
        self.store = store if store is not None else self._build_store()
        self.roster_provider = roster_provider or self._default_roster_provider()

        self.planner = QueryPlanner(
            self.store,
            fallback_store=self.fallback_store if self.store is not self.fallback_store else None,
            timeout=self.settings.store_timeout_seconds,
            retry_backoff=self.settings.store_retry_backoff_seconds,
            max_backoff=self.settings.store_max_backoff_seconds,
        )
        self.synthesizer = AnswerSynthesizer()
        self._today = today
        self._parser: Optional[ClubQueryParser] = None
        self.last_details: Optional[ProcessingDetails] = None

    def _build_store(self) -> StatsStore:
        if not self.settings.has_live_store:
            if self.fallback_store is None:
                self.settings.require_live_store()
            logger.warning("⚠️ Supabase credentials not set, answering from the fallback dataset only")
            return self.fallback_store

        live = SupabaseStatsStore(self.settings.supabase_url, self.settings.supabase_key)
        self._supabase_client = live.supabase
        if self.settings.has_cache:
            cache = create_query_cache(
                redis_host=self.settings.redis_host,
                redis_port=self.settings.redis_port,
                redis_password=self.settings.redis_password,
                default_ttl=self.settings.cache_ttl_seconds,
            )
            if cache is not None:
                return CachedStatsStore(live, cache)
        return live

    def _default_roster_provider(self) -> RosterProvider:
        if self._supabase_client is not None:
            return SupabaseRosterProvider(self._supabase_client)
        if self.fallback_store is not None:
            return self.fallback_store.roster_provider()
        return StaticRosterProvider([])

    async def refresh_roster(self) -> Roster:
        """Reload registered names; runs independently of question processing."""
        try:
            roster = await self.roster_provider.fetch_roster()
        except Exception as e:
            logger.warning(f"⚠️ Roster refresh failed: {e}")
            if self.fallback_store is not None:
                roster = await self.fallback_store.roster_provider().fetch_roster()
            else:
                roster = build_roster([])
        self._parser = ClubQueryParser(
            roster, today=self._today, ranking_limit=self.settings.ranking_default_limit
        )
        logger.info(f"✅ Roster ready: {len(roster.players)} players, {len(roster.teams)} teams")
        return roster

    async def _get_parser(self) -> ClubQueryParser:
        if self._parser is None:
            await self.refresh_roster()
        return self._parser

    async def answer_question(self, context: QuestionContext) -> QuestionOutcome:
        """
        Process one question through the complete pipeline.

        Never raises for expected failures; they become answers with a lower
        confidence tier.
        """
        recorder = DiagnosticsRecorder()
        parsed = None
        plan_outcome = PlanOutcome()

        try:
            if not context.question or not context.question.strip():
                synthesis = self.synthesizer.not_understood(context.question or "")
            else:
                parser = await self._get_parser()
                with recorder.stage("parse"):
                    parsed = parser.parse_question(context)
                with recorder.stage("plan"):
                    plan = self.planner.plan(parsed)
                with recorder.stage("retrieve"):
                    plan_outcome = await self.planner.execute(plan)
                with recorder.stage("synthesize"):
                    synthesis = self.synthesizer.synthesize(parsed, plan_outcome)
                for failure in plan_outcome.failures:
                    recorder.note(f"store unavailable for '{failure.descriptor.label}': {failure.reason}")
        except Exception as e:
            logger.exception(f"❌ Unexpected error answering '{context.question}'")
            recorder.note(f"unexpected error: {e.__class__.__name__}")
            synthesis = self.synthesizer.apology(context.question, str(e))

        details = recorder.build(
            synthesis.answer,
            analysis=parsed.analysis if parsed else None,
            entities=list(parsed.entity_resolution.entities) if parsed else [],
            state_path=synthesis.state_path,
            used_fallback=plan_outcome.used_fallback,
        )
        self.last_details = details
        return QuestionOutcome(synthesis.answer, details)

    async def process_question(self, context: QuestionContext) -> AnswerResult:
        outcome = await self.answer_question(context)
        return outcome.answer

    def get_processing_details(self) -> Optional[ProcessingDetails]:
        """Details of the most recently finished call (shared slot)."""
        return self.last_details

    def process_question_sync(self, question: str, user_context: Optional[str] = None) -> AnswerResult:
        """Sync wrapper for process_question."""
        return asyncio.run(self.process_question(QuestionContext(question, user_context)))

    async def process_multiple_questions(self, contexts: List[QuestionContext]) -> List[AnswerResult]:
        """Answer several questions concurrently."""
        return list(await asyncio.gather(*(self.process_question(c) for c in contexts)))

    async def close(self) -> None:
        await self.store.close()


def configure_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s: %(name)s: %(message)s",
    )


def print_answer(question: str, answer: AnswerResult, details: Optional[ProcessingDetails] = None) -> None:
    print(f"\nQ: {question}")
    print("-" * 80)
    print(answer.answer)
    timing = f", Time: {details.timings_ms.get('total', 0):.1f}ms" if details else ""
    print(f"(Confidence: {answer.confidence.value}{timing})")
    if answer.visualization is not None:
        columns = answer.visualization.config.get("columns", [])
        print(" | ".join(c["label"] for c in columns))
        for row in answer.visualization.data:
            print(" | ".join(str(row.get(c["key"], "")) for c in columns))


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Ask a question about the club's statistics.")
    parser.add_argument("question", nargs="*", help="Question to answer")
    parser.add_argument("--user", dest="user_context", help="Player asking the question")
    parser.add_argument("--log-level", default=None, help="Logging level (default from LOG_LEVEL)")
    args = parser.parse_args(argv)

    settings = EngineSettings.from_env()
    configure_logging(args.log_level or settings.log_level)

    questions = [" ".join(args.question)] if args.question else [
        "How many goals has Luke Bangs scored?",
        "What is Jonny Sourris's penalty conversion rate?",
        "How many points has Oli Goddard got?",
        "Who is the club's top scorer?",
        "Compare Luke Bangs and Oli Goddard for assists",
        "What was Luke Bangs' best season for goals?",
        "How many goals has Joe Bloggs scored?",
    ]

    engine = ClubStatsIntelligence(settings)

    async def run() -> None:
        try:
            for question in questions:
                outcome = await engine.answer_question(QuestionContext(question, args.user_context))
                print_answer(question, outcome.answer, outcome.details)
        finally:
            await engine.close()

    asyncio.run(run())


if __name__ == "__main__":
    main()
