from __future__ import annotations

import pytest

from pdfgen.config.cache import CacheRegistry, TtlCache


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_get_or_load_caches_values_and_records_stats() -> None:
    cache: TtlCache[str] = TtlCache("demo", max_entries=10, ttl_seconds=60)
    calls: list[str] = []

    def loader() -> str:
        calls.append("load")
        return "value"

    assert cache.get_or_load("k", loader) == "value"
    assert cache.get_or_load("k", loader) == "value"

    stats = cache.stats()
    assert calls == ["load"]
    assert stats["hitCount"] == 1
    assert stats["missCount"] == 1
    assert stats["loadSuccessCount"] == 1
    assert stats["estimatedSize"] == 1


def test_absent_loads_are_not_cached() -> None:
    cache: TtlCache[str] = TtlCache("demo", max_entries=10, ttl_seconds=60)
    calls: list[int] = []

    def loader() -> None:
        calls.append(1)
        return None

    assert cache.get_or_load("k", loader) is None
    assert cache.get_or_load("k", loader) is None
    assert len(calls) == 2
    assert cache.stats()["loadFailureCount"] == 2


def test_failed_load_releases_its_key_lock() -> None:
    cache: TtlCache[str] = TtlCache("demo", max_entries=10, ttl_seconds=60)

    def broken() -> str:
        raise RuntimeError("store down")

    for key in ("a", "b", "c"):
        with pytest.raises(RuntimeError, match="store down"):
            cache.get_or_load(key, broken)

    assert cache._load_locks == {}
    assert cache.get_or_load("a", lambda: "value") == "value"
    assert cache.stats()["loadFailureCount"] == 3


def test_entries_expire_after_ttl() -> None:
    clock = _Clock()
    cache: TtlCache[str] = TtlCache("demo", max_entries=10, ttl_seconds=5, clock=clock)
    cache.put("k", "v")

    clock.now = 4.9
    assert cache.get("k") == "v"
    clock.now = 5.0
    assert cache.get("k") is None
    assert cache.stats()["evictionCount"] == 1


def test_size_bound_evicts_oldest_write() -> None:
    cache: TtlCache[int] = TtlCache("demo", max_entries=2, ttl_seconds=60)
    cache.put("a", 1)
    cache.put("b", 2)
    cache.put("c", 3)

    assert cache.get("a") is None
    assert cache.get("c") == 3
    assert cache.size() == 2


def test_registry_health_and_unknown_cache() -> None:
    registry = CacheRegistry(max_entries=5, ttl_seconds=60)

    assert registry.health() == {"status": "HEALTHY", "averageHitRate": 100.0, "cacheCount": 4}

    for name in registry.names():
        registry.get(name).get("missing")
    assert registry.health()["status"] == "DEGRADED"

    with pytest.raises(ValueError, match="Unknown cache: nope"):
        registry.clear("nope")
