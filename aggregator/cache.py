"""Forecast cache on top of a Django cache alias.

The Django cache is the key-value/TTL collaborator; this module owns the
entry format, key construction, lazy expiry and statistics. Backend failures
degrade to misses and are never raised to callers.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.core.cache import caches
from django.core.cache.backends.base import BaseCache

from .engines.errors import CacheUnavailable
from .engines.types import CanonicalForecast
from .metrics import (
    aggregator_cache_entries,
    aggregator_cache_errors_total,
    aggregator_cache_hits_total,
    aggregator_cache_misses_total,
)
from .timeutils import time_bucket

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = int(
    getattr(settings, "FORECAST_CACHE_TTL_SECONDS", 3600)
)
BUCKET_SECONDS = int(getattr(settings, "FORECAST_CACHE_BUCKET_SECONDS", 3600))
KEY_PRECISION = int(getattr(settings, "FORECAST_CACHE_PRECISION", 3))
SWEEP_SECONDS = int(getattr(settings, "FORECAST_CACHE_SWEEP_SECONDS", 300))


@dataclass(frozen=True)
class CacheKey:
    provider: str
    lat: float
    lon: float
    bucket: int
    precision: int = KEY_PRECISION

    @classmethod
    def for_point(
        cls,
        lat: float,
        lon: float,
        provider: str,
        *,
        at: float | None = None,
        precision: int = KEY_PRECISION,
        bucket_seconds: int = BUCKET_SECONDS,
    ) -> CacheKey:
        """Round the point and bucket the fetch time into a fixed window."""

        instant = time.time() if at is None else at
        return cls(
            provider=provider,
            lat=round(lat, precision),
            lon=round(lon, precision),
            bucket=time_bucket(instant, bucket_seconds),
            precision=precision,
        )

    def as_string(self) -> str:
        # "+ 0.0" folds -0.0 into 0.0 so both render identically.
        lat = f"{self.lat + 0.0:.{self.precision}f}"
        lon = f"{self.lon + 0.0:.{self.precision}f}"
        return f"forecast:{self.provider}:{lat}:{lon}:{self.bucket}"


@dataclass(frozen=True)
class CacheEntry:
    value: CanonicalForecast
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class CacheStats:
    entry_count: int
    hit_count: int
    miss_count: int
    oldest_entry_age: float | None
    newest_entry_age: float | None

    @property
    def hit_rate(self) -> float:
        total = self.hit_count + self.miss_count
        return self.hit_count / total if total else 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "entry_count": self.entry_count,
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "hit_rate": round(self.hit_rate, 4),
            "oldest_entry_age": self.oldest_entry_age,
            "newest_entry_age": self.newest_entry_age,
        }


class ForecastCache:
    """TTL-indexed forecast store.

    `entry_count` and entry ages cover entries this process wrote or read;
    the backing store may hold more when it is shared between workers.
    """

    def __init__(
        self,
        *,
        alias: str | None = None,
        backend: BaseCache | None = None,
        default_ttl: float | None = None,
        sweep_interval: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.alias = alias or getattr(
            settings, "FORECAST_CACHE_ALIAS", "default"
        )
        self._backend = backend
        self.default_ttl = float(default_ttl or DEFAULT_TTL_SECONDS)
        self.sweep_interval = float(
            SWEEP_SECONDS if sweep_interval is None else sweep_interval
        )
        self._clock = clock
        self._last_sweep = clock()
        self._lock = threading.Lock()
        self._index: dict[str, tuple[float, float]] = {}
        self._hits = 0
        self._misses = 0

    @property
    def backend(self) -> BaseCache:
        if self._backend is None:
            self._backend = caches[self.alias]
        return self._backend

    def get(self, key: CacheKey) -> CanonicalForecast | None:
        raw_key = key.as_string()
        try:
            entry = self._backend_get(raw_key)
        except CacheUnavailable as exc:
            logger.warning(
                "forecast_cache.get.unavailable key=%s err=%s", raw_key, exc
            )
            self._record_miss(key.provider)
            return None

        now = self._clock()
        if not isinstance(entry, CacheEntry) or entry.is_expired(now):
            with self._lock:
                if isinstance(entry, CacheEntry):
                    self._index.pop(raw_key, None)
                    aggregator_cache_entries.set(len(self._index))
            self._record_miss(key.provider)
            return None

        with self._lock:
            self._index.setdefault(
                raw_key, (entry.created_at, entry.expires_at)
            )
            self._hits += 1
        aggregator_cache_hits_total.labels(provider=key.provider).inc()
        return entry.value

    def put(
        self,
        key: CacheKey,
        forecast: CanonicalForecast,
        ttl: float | None = None,
    ) -> None:
        ttl_seconds = self.default_ttl if ttl is None else float(ttl)
        if ttl_seconds <= 0:
            raise ValueError("ttl must be positive")
        now = self._clock()
        entry = CacheEntry(
            value=forecast, created_at=now, expires_at=now + ttl_seconds
        )
        raw_key = key.as_string()
        try:
            self._backend_set(raw_key, entry, math.ceil(ttl_seconds))
        except CacheUnavailable as exc:
            logger.warning(
                "forecast_cache.put.unavailable key=%s err=%s", raw_key, exc
            )
            return
        with self._lock:
            self._index[raw_key] = (entry.created_at, entry.expires_at)
            aggregator_cache_entries.set(len(self._index))
            due = (
                self.sweep_interval > 0
                and now - self._last_sweep >= self.sweep_interval
            )
        if due:
            self.sweep()

    def stats(self) -> CacheStats:
        now = self._clock()
        with self._lock:
            self._drop_expired(now)
            created = [created_at for created_at, _ in self._index.values()]
            hits, misses = self._hits, self._misses
        return CacheStats(
            entry_count=len(created),
            hit_count=hits,
            miss_count=misses,
            oldest_entry_age=(now - min(created)) if created else None,
            newest_entry_age=(now - max(created)) if created else None,
        )

    def sweep(self) -> int:
        """Evict expired entries tracked by this process. Returns the count."""

        now = self._clock()
        with self._lock:
            self._last_sweep = now
            expired = self._drop_expired(now)
        for raw_key in expired:
            try:
                self._backend_delete(raw_key)
            except CacheUnavailable as exc:
                logger.warning(
                    "forecast_cache.sweep.unavailable key=%s err=%s",
                    raw_key,
                    exc,
                )
        if expired:
            logger.info("forecast_cache.sweep evicted=%s", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            keys = list(self._index)
            self._index.clear()
            self._hits = 0
            self._misses = 0
            aggregator_cache_entries.set(0)
        for raw_key in keys:
            try:
                self._backend_delete(raw_key)
            except CacheUnavailable as exc:
                logger.warning(
                    "forecast_cache.clear.unavailable key=%s err=%s",
                    raw_key,
                    exc,
                )

    def _record_miss(self, provider: str) -> None:
        with self._lock:
            self._misses += 1
        aggregator_cache_misses_total.labels(provider=provider).inc()

    def _drop_expired(self, now: float) -> list[str]:
        expired = [
            raw_key
            for raw_key, (_, expires_at) in self._index.items()
            if now >= expires_at
        ]
        for raw_key in expired:
            del self._index[raw_key]
        aggregator_cache_entries.set(len(self._index))
        return expired

    def _backend_get(self, raw_key: str) -> Any:
        try:
            return self.backend.get(raw_key)
        except Exception as exc:
            aggregator_cache_errors_total.labels(operation="get").inc()
            raise CacheUnavailable(str(exc)) from exc

    def _backend_set(
        self, raw_key: str, entry: CacheEntry, timeout: int
    ) -> None:
        try:
            self.backend.set(raw_key, entry, timeout)
        except Exception as exc:
            aggregator_cache_errors_total.labels(operation="set").inc()
            raise CacheUnavailable(str(exc)) from exc

    def _backend_delete(self, raw_key: str) -> None:
        try:
            self.backend.delete(raw_key)
        except Exception as exc:
            aggregator_cache_errors_total.labels(operation="delete").inc()
            raise CacheUnavailable(str(exc)) from exc

    def probe(self) -> bool:
        """Write, read back and delete a sentinel. Used by health checks."""

        raw_key = "forecast:health:probe"
        try:
            self.backend.set(raw_key, "1", 10)
            ok = self.backend.get(raw_key) == "1"
            self.backend.delete(raw_key)
        except Exception as exc:
            aggregator_cache_errors_total.labels(operation="probe").inc()
            logger.warning("forecast_cache.probe.failed err=%s", exc)
            return False
        return ok
