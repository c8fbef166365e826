"""
Query planning and execution.

Turns a parsed question into store requests (one per subject, or one
cohort-wide request for rankings and club totals) and runs them
concurrently. Each store call carries a timeout and gets a single retry
after a bounded backoff; a request that still fails becomes a
StoreUnavailable value instead of an exception. Requests the fallback
dataset covers are re-run against it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from ..config.club_entities import EntityType, IntentKind, StatRecord
from .computation import effective_spec
from .database import (
    FallbackStatsStore,
    QueryDescriptor,
    QueryKind,
    StatsStore,
    StoreRefusal,
    StoreResponse,
    StoreTimeoutError,
)
from .query_parser import ParsedQuestion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreUnavailable:
    """Typed failure for a store request that timed out or errored twice, or was declined outright."""
    descriptor: QueryDescriptor
    reason: str
    attempts: int
    refused: bool = False


@dataclass
class RequestOutcome:
    descriptor: QueryDescriptor
    records: List[StatRecord] = field(default_factory=list)
    source: str = "store"
    failure: Optional[StoreUnavailable] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.failure is None or self.source == "fallback"

    @property
    def used_fallback(self) -> bool:
        return self.failure is not None and self.source == "fallback"


@dataclass(frozen=True)
class QueryPlan:
    requests: Tuple[QueryDescriptor, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.requests


@dataclass
class PlanOutcome:
    outcomes: List[RequestOutcome] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return any(o.used_fallback for o in self.outcomes)

    @property
    def failures(self) -> List[StoreUnavailable]:
        return [o.failure for o in self.outcomes if not o.ok and o.failure is not None]

    @property
    def all_failed(self) -> bool:
        return bool(self.outcomes) and all(not o.ok for o in self.outcomes)

    def for_subject(self, subject: Optional[str]) -> Optional[RequestOutcome]:
        for outcome in self.outcomes:
            if outcome.descriptor.subject == subject:
                return outcome
        return None


class QueryPlanner:
    def __init__(
        self,
        store: StatsStore,
        fallback_store: Optional[FallbackStatsStore] = None,
        timeout: float = 5.0,
        retry_backoff: float = 0.25,
        max_backoff: float = 1.0,
    ):
        self.store = store
        self.fallback_store = fallback_store
        self.timeout = timeout
        self.retry_backoff = retry_backoff
        self.max_backoff = max_backoff

    def plan(self, parsed: ParsedQuestion) -> QueryPlan:
        """Build the store requests a parsed question needs (possibly none)."""
        analysis = parsed.analysis
        if parsed.clarification or analysis.type == IntentKind.UNCLASSIFIED or not parsed.metric_specs:
            return QueryPlan()

        fields = tuple(sorted({f for spec in parsed.metric_specs for f in effective_spec(spec).fields}))
        modifiers = analysis.modifiers

        if analysis.type == IntentKind.RANKING:
            cohort_type = parsed.ranking.cohort_type if parsed.ranking else EntityType.PLAYER
            return QueryPlan((QueryDescriptor(QueryKind.COHORT_TOTALS, None, cohort_type, fields, modifiers),))

        if analysis.type == IntentKind.CLUB:
            return QueryPlan((QueryDescriptor(QueryKind.COHORT_TOTALS, None, EntityType.PLAYER, fields, modifiers),))

        if analysis.type == IntentKind.HISTORICAL and not parsed.subjects:
            return QueryPlan((QueryDescriptor(QueryKind.COHORT_SEASONS, None, EntityType.PLAYER, fields, modifiers),))

        kind = QueryKind.ENTITY_SEASONS if analysis.type == IntentKind.HISTORICAL else QueryKind.ENTITY_TOTALS
        requests = []
        for subject in parsed.subjects:
            subject_modifiers = modifiers
            if subject.entity_type == EntityType.TEAM:
                # the team is the subject, not an extra filter
                subject_modifiers = replace(modifiers, teams=())
            requests.append(
                QueryDescriptor(kind, subject.canonical_name, subject.entity_type, fields, subject_modifiers)
            )
        return QueryPlan(tuple(requests))

    async def execute(self, plan: QueryPlan) -> PlanOutcome:
        """Run every request concurrently and wait for all of them."""
        if plan.is_empty:
            return PlanOutcome()
        outcomes = await asyncio.gather(*(self._run(descriptor) for descriptor in plan.requests))
        return PlanOutcome(list(outcomes))

    async def _run(self, descriptor: QueryDescriptor) -> RequestOutcome:
        start = time.perf_counter()
        result = await self._call_store(descriptor)
        if isinstance(result, StoreResponse):
            return RequestOutcome(
                descriptor, result.records, result.source, elapsed_ms=(time.perf_counter() - start) * 1000
            )

        outcome = RequestOutcome(descriptor, source="unavailable", failure=result)
        if self.fallback_store is not None and self.fallback_store.covers(descriptor):
            try:
                response = await self.fallback_store.run_query(descriptor, descriptor.params())
            except Exception as e:
                logger.error(f"❌ Fallback dataset failed for '{descriptor.label}': {e}")
            else:
                logger.warning(f"⚠️ Answering '{descriptor.label}' from the fallback dataset")
                outcome = RequestOutcome(descriptor, response.records, "fallback", failure=result)
        outcome.elapsed_ms = (time.perf_counter() - start) * 1000
        return outcome

    async def _call_store(self, descriptor: QueryDescriptor):
        """StoreResponse on success, StoreUnavailable after the retry is spent."""
        params = descriptor.params()
        reason = ""
        attempts = 0
        for attempt in range(2):
            attempts = attempt + 1
            try:
                return await asyncio.wait_for(self.store.run_query(descriptor, params), timeout=self.timeout)
            except (asyncio.TimeoutError, StoreTimeoutError):
                reason = f"timed out after {self.timeout}s"
            except StoreRefusal as e:
                logger.info(f"Store declined '{descriptor.label}': {e.reason}")
                return StoreUnavailable(descriptor, e.reason, attempts, refused=True)
            except Exception as e:
                reason = str(e) or e.__class__.__name__
            logger.warning(f"⚠️ Store request for '{descriptor.label}' failed (attempt {attempts}): {reason}")
            if attempt == 0:
                await asyncio.sleep(min(self.retry_backoff, self.max_backoff))
        return StoreUnavailable(descriptor, reason, attempts)

    def records_by_subject(self, outcome: PlanOutcome) -> Dict[str, List[StatRecord]]:
        return {
            o.descriptor.subject: o.records
            for o in outcome.outcomes
            if o.ok and o.descriptor.subject is not None
        }
