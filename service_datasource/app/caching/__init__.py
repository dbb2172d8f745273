"""
Query result caching.

Provides the time-bounded, in-memory cache the query gateway uses for
derived pages and bulk datasets. Entries expire after a fixed TTL and are
never mutated; invalidation is explicit and whole-cache.
"""

from .ttl_cache import CacheEntry, DEFAULT_TTL_SECONDS, TTLCache

__all__ = ["CacheEntry", "DEFAULT_TTL_SECONDS", "TTLCache"]
