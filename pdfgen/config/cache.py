"""Bounded TTL caches for configs and templates, with load statistics."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

V = TypeVar("V")

CACHE_NAMES = ("pdfConfigs", "acroformTemplates", "configFile", "appSource")


@dataclass
class CacheStats:
    hit_count: int = 0
    miss_count: int = 0
    eviction_count: int = 0
    load_success_count: int = 0
    load_failure_count: int = 0
    total_load_time_ns: int = 0

    @property
    def request_count(self) -> int:
        return self.hit_count + self.miss_count

    @property
    def hit_rate(self) -> float:
        if self.request_count == 0:
            return 1.0
        return self.hit_count / self.request_count

    @property
    def average_load_penalty_ms(self) -> float:
        loads = self.load_success_count + self.load_failure_count
        if loads == 0:
            return 0.0
        return self.total_load_time_ns / loads / 1_000_000


class TtlCache(Generic[V]):
    """Thread-safe cache bounded by size with expiry after write.

    Reads take a short lock; loads for one key are serialized so concurrent
    callers share a single load. ``None`` results are returned but not stored.
    """

    def __init__(
        self,
        name: str,
        *,
        max_entries: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive: {max_entries}")
        self.name = name
        self._max_entries = max_entries
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, V]] = OrderedDict()
        self._lock = threading.Lock()
        self._load_locks: dict[str, threading.Lock] = {}
        self._stats = CacheStats()

    def get(self, key: str) -> V | None:
        with self._lock:
            value = self._lookup(key)
            if value is None:
                self._stats.miss_count += 1
            else:
                self._stats.hit_count += 1
            return value

    def put(self, key: str, value: V) -> None:
        with self._lock:
            self._store(key, value)

    def get_or_load(self, key: str, loader: Callable[[], V | None]) -> V | None:
        cached = self.get(key)
        if cached is not None:
            return cached

        with self._lock:
            load_lock = self._load_locks.setdefault(key, threading.Lock())

        with load_lock:
            with self._lock:
                value = self._lookup(key)
            if value is not None:
                return value

            started = time.perf_counter_ns()
            try:
                loaded = loader()
            except Exception:
                with self._lock:
                    self._stats.load_failure_count += 1
                    self._stats.total_load_time_ns += time.perf_counter_ns() - started
                    self._load_locks.pop(key, None)
                raise

            with self._lock:
                self._stats.total_load_time_ns += time.perf_counter_ns() - started
                if loaded is None:
                    self._stats.load_failure_count += 1
                else:
                    self._stats.load_success_count += 1
                    self._store(key, loaded)
                self._load_locks.pop(key, None)
            return loaded

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            self._purge_expired()
            snapshot = self._stats
            return {
                "hitCount": snapshot.hit_count,
                "missCount": snapshot.miss_count,
                "hitRate": round(snapshot.hit_rate * 100, 2),
                "evictionCount": snapshot.eviction_count,
                "estimatedSize": len(self._entries),
                "loadSuccessCount": snapshot.load_success_count,
                "loadFailureCount": snapshot.load_failure_count,
                "totalLoadTimeMs": round(snapshot.total_load_time_ns / 1_000_000, 3),
                "averageLoadPenaltyMs": round(snapshot.average_load_penalty_ms, 3),
            }

    def _lookup(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        written_at, value = entry
        if self._clock() - written_at >= self._ttl_seconds:
            del self._entries[key]
            self._stats.eviction_count += 1
            return None
        return value

    def _store(self, key: str, value: V) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (self._clock(), value)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
            self._stats.eviction_count += 1

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [
            key
            for key, (written_at, _) in self._entries.items()
            if now - written_at >= self._ttl_seconds
        ]
        for key in expired:
            del self._entries[key]
            self._stats.eviction_count += 1


class CacheRegistry:
    """Process-wide set of named caches with a single clear-all hook."""

    def __init__(
        self,
        *,
        max_entries: int = 500,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._caches: dict[str, TtlCache[Any]] = {
            name: TtlCache(name, max_entries=max_entries, ttl_seconds=ttl_seconds, clock=clock)
            for name in CACHE_NAMES
        }

    def get(self, name: str) -> TtlCache[Any]:
        try:
            return self._caches[name]
        except KeyError as exc:
            raise ValueError(f"Unknown cache: {name}") from exc

    def names(self) -> list[str]:
        return list(self._caches)

    def stats(self) -> dict[str, dict[str, Any]]:
        return {name: cache.stats() for name, cache in self._caches.items()}

    def clear(self, name: str) -> None:
        self.get(name).clear()

    def clear_all(self) -> None:
        for cache in self._caches.values():
            cache.clear()

    def health(self) -> dict[str, Any]:
        """Report HEALTHY when the average hit rate across caches exceeds 50%."""

        stats = self.stats()
        average = sum(item["hitRate"] for item in stats.values()) / len(stats)
        return {
            "status": "HEALTHY" if average > 50 else "DEGRADED",
            "averageHitRate": round(average, 2),
            "cacheCount": len(stats),
        }
