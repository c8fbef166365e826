"""
Cached statistics store.

Wraps any StatsStore with the Redis query cache: cache first, then the
store, then write back. A cache that is down behaves like a miss.
"""

import logging
import time
from typing import Any, Dict, Optional

from ..config.club_entities import StatRecord
from .database import QueryDescriptor, StatsStore, StoreResponse
from .query_cache import QueryCache

logger = logging.getLogger(__name__)


class CachedStatsStore(StatsStore):
    def __init__(self, store: StatsStore, query_cache: Optional[QueryCache]):
        self.store = store
        self.query_cache = query_cache
        self.name = store.name

    async def run_query(self, query: QueryDescriptor, params: Dict[str, Any]) -> StoreResponse:
        if self.query_cache is not None:
            cached = await self.query_cache.get_cached_result(query.kind.value, params)
            if cached is not None:
                logger.debug(f"Cache hit for '{query.label}'")
                return StoreResponse(
                    records=[StatRecord(row) for row in cached.get("records", [])],
                    source=cached.get("source", self.name),
                    cached=True,
                )

        start_time = time.perf_counter()
        response = await self.store.run_query(query, params)
        logger.debug(f"🔄 '{query.label}' fetched in {(time.perf_counter() - start_time) * 1000:.1f}ms")

        if self.query_cache is not None:
            await self.query_cache.cache_result(
                query.kind.value,
                params,
                {"records": [r.to_dict() for r in response.records], "source": response.source},
            )
        return response

    async def close(self) -> None:
        await self.store.close()
        if self.query_cache is not None:
            await self.query_cache.close()
