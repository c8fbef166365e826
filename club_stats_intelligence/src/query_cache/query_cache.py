"""
Query Cache for club statistics requests.

Provides Redis-based caching of store responses with TTLs chosen from the
request's time scope: closed seasons change rarely, the current season
changes weekly.
"""

import hashlib
import json
import logging
from datetime import date
from typing import Any, Dict, Optional

import redis.asyncio as redis_async

from ..modifier_extractor import season_label, season_start_year

logger = logging.getLogger(__name__)

CURRENT_SEASON_TTL = 900
HISTORICAL_TTL = 86400


class QueryCache:
    """
    Redis-based request cache.

    Features:
    - Cache key generated from request kind + parameters
    - TTL determined from the season the request covers
    - Hit/miss counters
    - Errors are logged and reported as misses
    """

    def __init__(self, redis_client: Any, default_ttl: int = 3600, current_season: Optional[str] = None):
        """
        Args:
            redis_client: Redis async client instance
            default_ttl: TTL in seconds for requests spanning every season
            current_season: Season label such as "2024/25"; defaults to today's
        """
        self.redis = redis_client
        self.default_ttl = default_ttl
        self.current_season = current_season or season_label(season_start_year(date.today()))
        self.cache_hit_counter = "cache_hits"
        self.cache_miss_counter = "cache_misses"
        self._connection_pool: Optional[Any] = None

    def _generate_query_hash(self, query: str, params: Dict[str, Any]) -> str:
        query_string = f"{query}:{json.dumps(params, sort_keys=True, default=str)}"
        return hashlib.sha256(query_string.encode()).hexdigest()

    def cache_key(self, query: str, params: Dict[str, Any]) -> str:
        return f"query:{self._generate_query_hash(query, params)}"

    async def get_cached_result(self, query: str, params: Dict[str, Any]) -> Optional[Dict]:
        """
        Retrieve a cached response.

        Args:
            query: Request identifier
            params: Request parameters

        Returns:
            Cached result dictionary or None if not found or unreadable
        """
        cache_key = self.cache_key(query, params)
        try:
            cached_data = await self.redis.get(cache_key)
        except Exception as e:
            logger.warning(f"Cache retrieval error: {e}")
            return None

        if not cached_data:
            await self._count(self.cache_miss_counter)
            return None

        try:
            result = json.loads(cached_data)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Cache data corruption detected: {e}")
            await self._count(self.cache_miss_counter)
            await self._discard(cache_key)
            return None

        await self._count(self.cache_hit_counter)
        return result

    async def cache_result(
        self,
        query: str,
        params: Dict[str, Any],
        result: Dict,
        ttl: Optional[int] = None,
    ) -> None:
        """
        Cache a response.

        Args:
            query: Request identifier
            params: Request parameters
            result: Result to cache
            ttl: Time-to-live in seconds (determined from params if None)
        """
        cache_key = self.cache_key(query, params)
        ttl = ttl or self._determine_ttl(query, params)
        try:
            await self.redis.setex(cache_key, ttl, json.dumps(result, default=str))
            logger.debug(f"Cached result with TTL {ttl}s: {cache_key[6:18]}...")
        except Exception as e:
            logger.error(f"Cache storage error: {e}")

    def _determine_ttl(self, query: str, params: Dict[str, Any]) -> int:
        season = params.get("season")
        end_date = params.get("end_date")

        if season and season != self.current_season:
            return HISTORICAL_TTL
        if end_date and end_date < date.today().isoformat():
            return HISTORICAL_TTL
        if season == self.current_season:
            return CURRENT_SEASON_TTL
        if "seasons" in query:
            return CURRENT_SEASON_TTL
        return self.default_ttl

    async def _count(self, counter: str) -> None:
        try:
            await self.redis.incr(counter)
        except Exception as e:
            logger.debug(f"Cache counter update failed: {e}")

    async def _discard(self, cache_key: str) -> None:
        try:
            await self.redis.delete(cache_key)
        except Exception as e:
            logger.debug(f"Could not remove corrupted entry {cache_key}: {e}")

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Invalidate cache entries matching a pattern.

        Returns:
            Number of keys deleted
        """
        try:
            keys = await self.redis.keys(pattern)
            if keys:
                deleted = await self.redis.delete(*keys)
                logger.info(f"Invalidated {deleted} cache entries matching: {pattern}")
                return deleted
            return 0
        except Exception as e:
            logger.error(f"Cache invalidation error: {e}")
            return 0

    async def get_cache_stats(self) -> Dict[str, Any]:
        """Hit/miss counts and ratios."""
        try:
            hits = int(await self.redis.get(self.cache_hit_counter) or 0)
            misses = int(await self.redis.get(self.cache_miss_counter) or 0)
        except Exception as e:
            logger.error(f"Error fetching cache stats: {e}")
            return {
                "hits": 0,
                "misses": 0,
                "total_requests": 0,
                "hit_ratio": 0,
                "miss_ratio": 0,
                "error": str(e),
            }

        total = hits + misses
        return {
            "hits": hits,
            "misses": misses,
            "total_requests": total,
            "hit_ratio": hits / total if total > 0 else 0,
            "miss_ratio": misses / total if total > 0 else 0,
        }

    async def clear_cache(self) -> bool:
        try:
            await self.invalidate_pattern("query:*")
            await self.redis.delete(self.cache_hit_counter, self.cache_miss_counter)
            logger.info("Cache cleared successfully")
            return True
        except Exception as e:
            logger.error(f"Error clearing cache: {e}")
            return False

    async def health_check(self) -> bool:
        try:
            return await self.redis.ping() is True
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        try:
            await self.redis.close()
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")


def create_query_cache(
    redis_host: str = "localhost",
    redis_port: int = 6379,
    redis_db: int = 0,
    redis_password: Optional[str] = None,
    default_ttl: int = 3600,
    max_connections: int = 10,
) -> Optional[QueryCache]:
    """
    Create a QueryCache with a pooled Redis connection.

    Returns:
        QueryCache instance or None if the client could not be created
    """
    try:
        pool = redis_async.ConnectionPool(
            host=redis_host,
            port=redis_port,
            db=redis_db,
            password=redis_password,
            decode_responses=True,
            max_connections=max_connections,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        cache = QueryCache(redis_async.Redis(connection_pool=pool), default_ttl)
        cache._connection_pool = pool
        logger.info(f"✅ Query cache created with connection pool (max_connections={max_connections})")
        return cache
    except Exception as e:
        logger.error(f"Failed to create Redis connection: {e}")
        return None
