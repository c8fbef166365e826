"""Redis-backed caching for club statistics requests."""

from .query_cache import QueryCache, create_query_cache  # noqa: F401

__all__ = ["QueryCache", "create_query_cache"]
