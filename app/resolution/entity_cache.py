"""
app/resolution/entity_cache.py

Entity Resolution Cache: resolves foreign-key style ids (tenant, property)
to full entities with an in-memory LRU, a durable SQLite copy, bounded
concurrent fetching, and retry with exponential backoff.

The cache is constructed and injected explicitly. ``initialize()`` must be
called (or the cache used as a context manager) before ``resolve``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from threading import Lock
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from app.config import ResolutionCacheSettings
from app.errors import CacheNotReadyError, ResolutionTimeoutError
from app.resolution.durable_store import DurableCacheStore
from app.resolution.fetcher import EntityFetcher, HttpEntityFetcher
from app.resolution.lru import LRUCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    evictions: int
    size: int
    hit_rate: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "hit_rate": self.hit_rate,
        }


class EntityResolutionCache:
    """
    Read-through cache for entity lookups.

    Args:
        fetcher:                 Performs one lookup request per call.
        store:                   Durable copy of resolved entities.
        capacity:                Maximum entries kept in memory.
        batch_size:              Ids per lookup request.
        max_concurrency:         Maximum lookup requests in flight at once.
        max_retries:             Retries after the first attempt of a batch.
        backoff_initial_seconds: Delay before the first retry.
        backoff_multiplier:      Growth factor of the delay per retry.
        sleep:                   Injected for tests.
    """

    def __init__(
        self,
        *,
        fetcher: EntityFetcher,
        store: DurableCacheStore,
        capacity: int = 5000,
        batch_size: int = 100,
        max_concurrency: int = 5,
        max_retries: int = 3,
        backoff_initial_seconds: float = 0.5,
        backoff_multiplier: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._lru = LRUCache(capacity)
        self._batch_size = max(1, batch_size)
        self._max_concurrency = max(1, max_concurrency)
        self._max_retries = max(0, max_retries)
        self._backoff_initial_seconds = backoff_initial_seconds
        self._backoff_multiplier = backoff_multiplier
        self._sleep = sleep

        self._executor: ThreadPoolExecutor | None = None
        self._ready = False
        self._counter_lock = Lock()
        self._hits = 0
        self._misses = 0

    @classmethod
    def from_settings(
        cls,
        settings: ResolutionCacheSettings,
        *,
        fetcher: EntityFetcher | None = None,
        store: DurableCacheStore | None = None,
    ) -> EntityResolutionCache:
        return cls(
            fetcher=fetcher or HttpEntityFetcher.from_settings(settings),
            store=store or DurableCacheStore(settings.db_path),
            capacity=settings.capacity,
            batch_size=settings.batch_size,
            max_concurrency=settings.max_concurrency,
            max_retries=settings.max_retries,
            backoff_initial_seconds=settings.backoff_initial_seconds,
            backoff_multiplier=settings.backoff_multiplier,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self._ready

    def initialize(self) -> None:
        """
        Open the durable store and warm the in-memory LRU from it.
        """

        if self._ready:
            return
        self._store.open()
        warmed = 0
        for entity_type, entity_id, payload in self._store.load_all():
            self._lru.put((entity_type, entity_id), payload)
            warmed += 1
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_concurrency,
            thread_name_prefix="entity-resolve",
        )
        self._ready = True
        logger.info(
            "Entity resolution cache ready warmed=%s in_memory=%s capacity=%s",
            warmed,
            len(self._lru),
            self._lru.capacity,
        )

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._store.close()
        self._ready = False

    def __enter__(self) -> EntityResolutionCache:
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def resolve(self, entity_type: str, ids: Iterable[Any]) -> dict[str, dict[str, Any]]:
        """
        Resolve ids to entities. Ids that cannot be fetched are omitted, never raised.
        """

        if not self._ready or self._executor is None:
            raise CacheNotReadyError("Entity resolution cache used before initialize().")

        type_key = _type_key(entity_type)
        unique_ids = _unique_ids(ids)
        resolved: dict[str, dict[str, Any]] = {}
        missing: list[str] = []

        for entity_id in unique_ids:
            cached = self._lru.get((type_key, entity_id))
            if cached is None:
                missing.append(entity_id)
            else:
                resolved[entity_id] = cached

        with self._counter_lock:
            self._hits += len(resolved)
            self._misses += len(missing)

        if not missing:
            return resolved

        batches = [
            missing[start : start + self._batch_size]
            for start in range(0, len(missing), self._batch_size)
        ]
        futures: list[Future[dict[str, dict[str, Any]]]] = [
            self._executor.submit(self._fetch_with_retry, type_key, batch) for batch in batches
        ]

        for future in futures:
            try:
                fetched = future.result()
            except ResolutionTimeoutError as exc:
                logger.warning(
                    "Entity resolution gave up entity_type=%s ids=%s attempts=%s",
                    exc.entity_type,
                    len(exc.ids),
                    exc.attempts,
                )
                continue
            self._merge(type_key, fetched)
            resolved.update(fetched)

        return resolved

    def invalidate(self, entity_type: str | None = None) -> None:
        """
        Drop cached entries from memory and the durable store, for one type or all.
        """

        type_key = _type_key(entity_type) if entity_type is not None else None
        removed = self._lru.clear(type_key)
        if self._store.is_open:
            self._store.clear(type_key)
        logger.info(
            "Entity resolution cache invalidated entity_type=%s removed_in_memory=%s",
            type_key or "*",
            removed,
        )

    def stats(self) -> CacheStats:
        with self._counter_lock:
            hits = self._hits
            misses = self._misses
        total = hits + misses
        return CacheStats(
            hits=hits,
            misses=misses,
            evictions=self._lru.evictions,
            size=len(self._lru),
            hit_rate=round(hits / total, 4) if total else 0.0,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch_with_retry(self, entity_type: str, ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        attempts = self._max_retries + 1
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                fetched = self._fetcher.fetch(entity_type, ids)
            except Exception as exc:  # noqa: BLE001 any fetcher failure counts as a failed attempt
                last_error = exc
            else:
                requested = set(ids)
                return {key: value for key, value in fetched.items() if key in requested}

            if attempt >= self._max_retries:
                break

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            logger.warning(
                "Entity lookup retry entity_type=%s attempt=%s/%s wait_seconds=%.2f error=%s",
                entity_type,
                attempt + 1,
                self._max_retries,
                backoff_seconds,
                last_error,
            )
            self._sleep(backoff_seconds)

        raise ResolutionTimeoutError(entity_type=entity_type, ids=ids, attempts=attempts) from last_error

    def _merge(self, entity_type: str, fetched: dict[str, dict[str, Any]]) -> None:
        if not fetched:
            return
        for entity_id, payload in fetched.items():
            self._lru.put((entity_type, entity_id), payload)
        try:
            self._store.put_many(entity_type, fetched)
        except SQLAlchemyError:
            logger.exception(
                "Entity cache durable write failed entity_type=%s entities=%s",
                entity_type,
                len(fetched),
            )


def _type_key(entity_type: str) -> str:
    return entity_type.strip().lower()


def _unique_ids(ids: Iterable[Any]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for raw in ids:
        if raw is None:
            continue
        entity_id = str(raw).strip()
        if not entity_id or entity_id in seen:
            continue
        seen.add(entity_id)
        unique.append(entity_id)
    return unique
