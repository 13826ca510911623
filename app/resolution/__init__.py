"""
app/resolution package marker.
"""

from app.resolution.durable_store import DurableCacheStore
from app.resolution.entity_cache import CacheStats, EntityResolutionCache
from app.resolution.fetcher import EntityFetcher, HttpEntityFetcher
from app.resolution.lru import LRUCache

__all__ = [
    "CacheStats",
    "DurableCacheStore",
    "EntityFetcher",
    "EntityResolutionCache",
    "HttpEntityFetcher",
    "LRUCache",
]
