from __future__ import annotations

import pytest

from app.resolution.lru import LRUCache


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        LRUCache(0)


def test_oldest_entry_is_evicted_past_capacity() -> None:
    cache = LRUCache(2)
    cache.put(("tenants", "1"), {"id": "1"})
    cache.put(("tenants", "2"), {"id": "2"})
    cache.put(("tenants", "3"), {"id": "3"})

    assert len(cache) == 2
    assert ("tenants", "1") not in cache
    assert cache.evictions == 1


def test_get_refreshes_recency() -> None:
    cache = LRUCache(2)
    cache.put(("tenants", "1"), {"id": "1"})
    cache.put(("tenants", "2"), {"id": "2"})

    assert cache.get(("tenants", "1")) == {"id": "1"}
    cache.put(("tenants", "3"), {"id": "3"})

    assert cache.keys() == [("tenants", "1"), ("tenants", "3")]


def test_put_existing_key_replaces_without_eviction() -> None:
    cache = LRUCache(2)
    cache.put(("tenants", "1"), {"v": 1})
    cache.put(("tenants", "1"), {"v": 2})

    assert cache.get(("tenants", "1")) == {"v": 2}
    assert len(cache) == 1
    assert cache.evictions == 0


def test_clear_by_entity_type() -> None:
    cache = LRUCache(10)
    cache.put(("tenants", "1"), {})
    cache.put(("tenants", "2"), {})
    cache.put(("properties", "9"), {})

    assert cache.clear("tenants") == 2
    assert cache.keys() == [("properties", "9")]
    assert cache.clear() == 1
    assert len(cache) == 0


def test_missing_key_returns_none() -> None:
    assert LRUCache(1).get(("tenants", "404")) is None
