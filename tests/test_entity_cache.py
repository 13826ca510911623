from __future__ import annotations

import pytest

from conftest import FakeFetcher, make_response

from app.errors import CacheNotReadyError, EntityFetchError
from app.resolution.durable_store import DurableCacheStore
from app.resolution.entity_cache import EntityResolutionCache
from app.resolution.fetcher import HttpEntityFetcher

TENANTS = {str(index): {"tenant_id": str(index), "full_name": f"Tenant {index}"} for index in range(1, 301)}


def _cache(fetcher, *, store=None, sleeps=None, **overrides) -> EntityResolutionCache:
    options = {
        "fetcher": fetcher,
        "store": store or DurableCacheStore(":memory:"),
        "sleep": (sleeps.append if sleeps is not None else lambda seconds: None),
    }
    options.update(overrides)
    return EntityResolutionCache(**options)


def test_resolve_before_initialize_raises() -> None:
    cache = _cache(FakeFetcher())

    with pytest.raises(CacheNotReadyError):
        cache.resolve("tenants", ["1"])


def test_second_lookup_is_served_from_memory() -> None:
    fetcher = FakeFetcher({"tenants": TENANTS})
    with _cache(fetcher) as cache:
        first = cache.resolve("tenants", ["1", "2", "404"])
        second = cache.resolve("Tenants", ["1", "2"])

        assert set(first) == {"1", "2"}
        assert second == {"1": TENANTS["1"], "2": TENANTS["2"]}
        assert len(fetcher.calls) == 1

        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (2, 3, 2)
        assert stats.hit_rate == 0.4


def test_duplicate_and_blank_ids_are_collapsed() -> None:
    fetcher = FakeFetcher({"tenants": TENANTS})
    with _cache(fetcher) as cache:
        resolved = cache.resolve("tenants", ["1", " 1 ", 1, None, "", "2"])

    assert set(resolved) == {"1", "2"}
    assert fetcher.calls == [("tenants", ("1", "2"))]


def test_misses_are_fetched_in_batches() -> None:
    fetcher = FakeFetcher({"tenants": TENANTS})
    with _cache(fetcher, batch_size=100) as cache:
        resolved = cache.resolve("tenants", [str(index) for index in range(1, 251)])

    assert len(resolved) == 250
    assert sorted(len(ids) for _, ids in fetcher.calls) == [50, 100, 100]


def test_concurrent_lookups_are_bounded() -> None:
    fetcher = FakeFetcher({"tenants": TENANTS}, delay=0.05)
    with _cache(fetcher, batch_size=10, max_concurrency=2) as cache:
        resolved = cache.resolve("tenants", [str(index) for index in range(1, 61)])

    assert len(resolved) == 60
    assert len(fetcher.calls) == 6
    assert fetcher.max_in_flight <= 2


def test_failed_lookup_is_retried_with_backoff() -> None:
    sleeps: list[float] = []
    fetcher = FakeFetcher({"tenants": TENANTS}, failures=2)
    with _cache(fetcher, sleeps=sleeps, max_retries=3) as cache:
        resolved = cache.resolve("tenants", ["1"])

    assert resolved == {"1": TENANTS["1"]}
    assert len(fetcher.calls) == 3
    assert sleeps == [0.5, 1.0]


def test_exhausted_retries_omit_ids_instead_of_raising() -> None:
    sleeps: list[float] = []
    fetcher = FakeFetcher({"tenants": TENANTS}, failures=10)
    with _cache(fetcher, sleeps=sleeps, max_retries=3) as cache:
        resolved = cache.resolve("tenants", ["1"])

    assert resolved == {}
    assert len(fetcher.calls) == 4
    assert sleeps == [0.5, 1.0, 2.0]


class _DroppingFetcher:
    def __init__(self) -> None:
        self.calls = 0

    def fetch(self, entity_type, ids):
        self.calls += 1
        raise ConnectionResetError("socket dropped")


def test_unexpected_fetcher_errors_are_retried_then_omitted() -> None:
    sleeps: list[float] = []
    fetcher = _DroppingFetcher()
    with _cache(fetcher, sleeps=sleeps, max_retries=2) as cache:
        resolved = cache.resolve("tenants", ["a"])

    assert resolved == {}
    assert fetcher.calls == 3
    assert sleeps == [0.5, 1.0]


def test_cache_is_warmed_from_durable_store(tmp_path) -> None:
    path = str(tmp_path / "entities.db")
    with _cache(FakeFetcher({"tenants": TENANTS}), store=DurableCacheStore(path)) as cache:
        cache.resolve("tenants", ["1", "2"])

    offline = FakeFetcher()
    with _cache(offline, store=DurableCacheStore(path)) as cache:
        resolved = cache.resolve("tenants", ["1", "2"])
        assert cache.stats().hits == 2

    assert set(resolved) == {"1", "2"}
    assert offline.calls == []


def test_invalidate_one_type_or_everything() -> None:
    store = DurableCacheStore(":memory:")
    fetcher = FakeFetcher({"tenants": TENANTS, "properties": {"7": {"property_id": "7"}}})
    with _cache(fetcher, store=store) as cache:
        cache.resolve("tenants", ["1"])
        cache.resolve("properties", ["7"])

        cache.invalidate("TENANTS")
        assert cache.stats().size == 1
        assert [row[0] for row in store.load_all()] == ["properties"]

        cache.invalidate()
        assert cache.stats().size == 0
        assert store.count() == 0

        cache.resolve("tenants", ["1"])
        assert len(fetcher.calls) == 3


def test_memory_eviction_keeps_durable_copy() -> None:
    store = DurableCacheStore(":memory:")
    fetcher = FakeFetcher({"tenants": TENANTS})
    with _cache(fetcher, store=store, capacity=2) as cache:
        cache.resolve("tenants", ["1", "2", "3"])

        assert cache.stats().size == 2
        assert cache.stats().evictions == 1
        assert store.count() == 3


def test_close_resets_readiness() -> None:
    cache = _cache(FakeFetcher())
    cache.initialize()
    assert cache.is_ready is True

    cache.close()

    assert cache.is_ready is False
    with pytest.raises(CacheNotReadyError):
        cache.resolve("tenants", ["1"])


class _RecordingSession:
    def __init__(self, response) -> None:
        self.response = response
        self.requests: list[tuple[str, dict]] = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        return self.response


def test_http_fetcher_sends_ids_and_returns_entities() -> None:
    session = _RecordingSession(make_response(200, {"entities": {"1": {"full_name": "Dana"}, "2": None}}))
    fetcher = HttpEntityFetcher(base_url="http://api.local/", timeout_seconds=3, session=session)

    entities = fetcher.fetch("tenants", ["1", "2"])

    assert entities == {"1": {"full_name": "Dana"}}
    url, kwargs = session.requests[0]
    assert url == "http://api.local/api/entities/tenants"
    assert kwargs["params"] == {"ids": "1,2"}
    assert kwargs["timeout"] == 3


@pytest.mark.parametrize(
    "response",
    [
        make_response(503, {"detail": "down"}),
        make_response(200, b"not json"),
        make_response(200, {"items": []}),
    ],
)
def test_http_fetcher_failures_raise_fetch_error(response) -> None:
    fetcher = HttpEntityFetcher(base_url="http://api.local", session=_RecordingSession(response))

    with pytest.raises(EntityFetchError):
        fetcher.fetch("tenants", ["1"])
