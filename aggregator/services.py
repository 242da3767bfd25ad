"""Aggregation orchestrator and the process-wide engine.

One `aggregate` call walks Sampling -> Fetching -> Merging -> Done: it caps
the points, resolves providers, fans out one task per distinct cache key
(cache first, then the provider through the retry executor) and merges the
outcomes back into input order. Provider failures become per-pair
annotations; only `AggregationFailed` escapes.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from django.conf import settings

from .alerts import generate_alerts
from .cache import CacheKey, CacheStats, ForecastCache
from .consensus import build_consensus, compare_sources
from .engines.base import WeatherProvider
from .engines.errors import (
    AggregationFailed,
    NotConfigured,
    ProviderError,
    ProviderTimeout,
    RateLimited,
    UnknownProvider,
)
from .engines.registry import ProviderRegistry, build_registry
from .engines.types import (
    AggregationRequest,
    AggregationResult,
    AggregationSettings,
    CanonicalForecast,
    GeoPoint,
    PointResult,
    ProviderFailure,
    RoutePoint,
)
from .executor import execute
from .metrics import (
    aggregator_provider_errors_total,
    aggregator_provider_latency_seconds,
    aggregator_provider_requests_total,
    aggregator_rate_limit_rejections_total,
    aggregator_requests_total,
)

logger = logging.getLogger(__name__)

MAX_POINTS = int(getattr(settings, "AGGREGATOR_MAX_POINTS", 50))
REQUEST_TIMEOUT_MS = int(
    getattr(settings, "AGGREGATOR_REQUEST_TIMEOUT_MS", 10_000)
)
OVERALL_TIMEOUT_MS = int(
    getattr(settings, "AGGREGATOR_OVERALL_TIMEOUT_MS", 30_000)
)
MAX_RETRIES = int(getattr(settings, "AGGREGATOR_MAX_RETRIES", 2))
MAX_CONCURRENCY = int(getattr(settings, "AGGREGATOR_MAX_CONCURRENCY", 10))
PROBE_TIMEOUT_MS = int(getattr(settings, "HEALTH_PROBE_TIMEOUT_MS", 5_000))

# London
PROBE_POINT = GeoPoint(lat=51.5074, lon=-0.1278)

# Strong references for fetches still running after a deadline.
_background_tasks: set[asyncio.Task[Any]] = set()


def default_settings() -> AggregationSettings:
    return AggregationSettings(
        max_points=MAX_POINTS,
        per_request_timeout_ms=REQUEST_TIMEOUT_MS,
        max_retries=MAX_RETRIES,
        overall_timeout_ms=OVERALL_TIMEOUT_MS,
    )


@dataclass(frozen=True)
class _PairOutcome:
    provider_id: str
    forecast: CanonicalForecast | None = None
    failure: ProviderFailure | None = None
    cache_hit: bool = False
    fetched: bool = False


def _failure_from(provider_id: str, exc: BaseException) -> ProviderFailure:
    if isinstance(exc, ProviderError):
        return ProviderFailure(
            provider_id=provider_id,
            kind=exc.kind,
            message=str(exc),
            status_code=getattr(exc, "status_code", None),
        )
    return ProviderFailure(
        provider_id=provider_id,
        kind="internal_error",
        message=f"{exc.__class__.__name__}: {exc}",
    )


def _dedupe(ids: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for raw in ids:
        pid = str(raw).strip().lower()
        if pid:
            seen.setdefault(pid, None)
    return list(seen)


class AggregationEngine:
    """Composes the registry, the forecast cache and the retry executor."""

    def __init__(
        self,
        registry: ProviderRegistry,
        cache: ForecastCache,
        *,
        max_concurrency: int = MAX_CONCURRENCY,
        probe_timeout_ms: int = PROBE_TIMEOUT_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self.registry = registry
        self.cache = cache
        self.max_concurrency = max_concurrency
        self.probe_timeout_ms = probe_timeout_ms
        self._clock = clock

    def available_providers(self) -> set[str]:
        return self.registry.available_providers()

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    async def aggregate(
        self, request: AggregationRequest
    ) -> AggregationResult:
        started = time.perf_counter()
        options = request.settings
        if options.max_points <= 0:
            raise ValueError("max_points must be positive")

        # Sampling
        points = list(request.points)
        capped = points[: options.max_points]
        dropped = len(points) - len(capped)
        available = sorted(self.registry.available_providers())
        providers, skipped = self._resolve(request.providers)
        logger.debug(
            "aggregator.state state=sampling points=%s dropped=%s "
            "providers=%s",
            len(capped),
            dropped,
            ",".join(providers),
        )

        # Fetching
        active = [pid for pid in providers if pid not in skipped]
        semaphore = asyncio.Semaphore(self.max_concurrency)
        expired = asyncio.Event()
        now = self._clock()
        # Points that round to the same cache key share one task.
        by_key: dict[str, asyncio.Task[_PairOutcome]] = {}
        tasks: dict[asyncio.Task[_PairOutcome], list[tuple[int, str]]] = {}
        for index, point in enumerate(capped):
            for pid in active:
                key = CacheKey.for_point(point.lat, point.lon, pid, at=now)
                task = by_key.get(key.as_string())
                if task is None:
                    provider = self.registry.get_provider(pid)
                    task = asyncio.ensure_future(
                        self._resolve_key(
                            key, point, provider, options, semaphore, expired
                        )
                    )
                    by_key[key.as_string()] = task
                    tasks[task] = []
                tasks[task].append((index, pid))
        logger.debug(
            "aggregator.state state=fetching pairs=%s keys=%s",
            sum(len(pairs) for pairs in tasks.values()),
            len(tasks),
        )

        timed_out = False
        cache_hits = 0
        upstream_fetches = 0
        outcomes: dict[tuple[int, str], _PairOutcome] = {}
        if tasks:
            done, pending = await asyncio.wait(
                tasks, timeout=options.overall_timeout_ms / 1000
            )
            for task in done:
                resolved = task.result()
                cache_hits += int(resolved.cache_hit)
                upstream_fetches += int(resolved.fetched)
                for pair in tasks[task]:
                    outcomes[pair] = resolved
            if pending:
                # Fetches already in flight keep running and still write
                # through to the cache; queued ones return without a call.
                timed_out = True
                expired.set()
                for task in pending:
                    _background_tasks.add(task)
                    task.add_done_callback(_background_tasks.discard)
                logger.warning(
                    "aggregator.deadline.exceeded pending=%s timeout_ms=%s",
                    len(pending),
                    options.overall_timeout_ms,
                )

        # Merging
        logger.debug("aggregator.state state=merging")
        results: list[PointResult] = []
        all_failures: list[ProviderFailure] = []
        for index, point in enumerate(capped):
            forecasts: list[CanonicalForecast] = []
            errors: list[ProviderFailure] = []
            for pid in providers:
                if pid in skipped:
                    errors.append(skipped[pid])
                    continue
                outcome = outcomes.get((index, pid))
                if outcome is None:
                    errors.append(
                        ProviderFailure(
                            provider_id=pid,
                            kind=ProviderTimeout.kind,
                            message="Aggregation deadline exceeded",
                        )
                    )
                    continue
                if outcome.forecast is not None:
                    forecasts.append(outcome.forecast)
                elif outcome.failure is not None:
                    errors.append(outcome.failure)
            all_failures.extend(errors)
            primary = forecasts[0] if forecasts else None
            results.append(
                PointResult(
                    point=point,
                    forecasts=tuple(forecasts),
                    errors=tuple(errors),
                    primary=primary,
                    alerts=tuple(generate_alerts(primary)) if primary else (),
                    consensus=build_consensus(forecasts),
                    comparison=compare_sources(forecasts),
                )
            )

        result = AggregationResult(
            points=tuple(results),
            providers=tuple(providers),
            available_providers=tuple(available),
            point_count=len(capped),
            dropped_points=dropped,
            cache_hits=cache_hits,
            upstream_fetches=upstream_fetches,
            timed_out=timed_out,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

        if capped and result.succeeded == 0:
            aggregator_requests_total.labels(outcome="failed").inc()
            logger.warning(
                "aggregator.request.failed points=%s providers=%s",
                len(capped),
                ",".join(providers) or "-",
            )
            if not providers:
                raise AggregationFailed(
                    "No weather providers are available",
                    failures=all_failures,
                )
            raise AggregationFailed(
                "All weather providers failed for every point",
                failures=all_failures,
            )

        outcome_label = "success" if not all_failures else "partial"
        if not capped:
            outcome_label = "empty"
        aggregator_requests_total.labels(outcome=outcome_label).inc()
        logger.debug(
            "aggregator.state state=done points=%s hits=%s fetches=%s "
            "timed_out=%s duration_ms=%s",
            result.point_count,
            cache_hits,
            upstream_fetches,
            timed_out,
            result.duration_ms,
        )
        return result

    async def test_provider(self, provider_id: str) -> bool:
        """Probe one provider once, without retries and without the cache.

        The probe is a real upstream call and counts against the provider's
        rate limit. An exhausted provider reports False without a request.
        """

        try:
            provider = self.registry.get_provider(provider_id)
        except UnknownProvider:
            return False
        if not provider.is_configured():
            return False
        try:
            await execute(
                lambda: provider.fetch_weather_data(PROBE_POINT),
                max_retries=0,
                timeout_ms=self.probe_timeout_ms,
                label=f"{provider_id} probe",
            )
        except ProviderError as exc:
            logger.info(
                "aggregator.probe.failed provider=%s kind=%s err=%s",
                provider_id,
                exc.kind,
                exc,
            )
            return False
        except Exception:
            logger.exception(
                "aggregator.probe.crashed provider=%s", provider_id
            )
            return False
        return True

    def _resolve(
        self, requested: Sequence[str]
    ) -> tuple[list[str], dict[str, ProviderFailure]]:
        """Return (provider ids in request order, skip annotations by id)."""

        ids = _dedupe(requested)
        if not ids:
            return self.registry.resolve_requested(None), {}

        skipped: dict[str, ProviderFailure] = {}
        for pid in ids:
            if pid not in self.registry:
                exc: ProviderError = UnknownProvider(
                    f"Unknown weather provider: {pid}", provider_id=pid
                )
            elif not self.registry.get_provider(pid).is_configured():
                exc = NotConfigured(
                    f"{pid} is not configured", provider_id=pid
                )
            elif not self.registry.get_provider(pid).can_make_request():
                aggregator_rate_limit_rejections_total.labels(
                    provider=pid
                ).inc()
                exc = RateLimited(
                    f"Rate limit exceeded for {pid}", provider_id=pid
                )
            else:
                continue
            skipped[pid] = _failure_from(pid, exc)
        return ids, skipped

    async def _resolve_key(
        self,
        key: CacheKey,
        point: RoutePoint,
        provider: WeatherProvider,
        options: AggregationSettings,
        semaphore: asyncio.Semaphore,
        expired: asyncio.Event,
    ) -> _PairOutcome:
        pid = provider.id
        cached = self.cache.get(key)
        if cached is not None:
            return _PairOutcome(
                provider_id=pid, forecast=cached, cache_hit=True
            )

        async with semaphore:
            if expired.is_set():
                logger.debug(
                    "aggregator.fetch.skipped provider=%s key=%s "
                    "reason=deadline",
                    pid,
                    key.as_string(),
                )
                return _PairOutcome(
                    provider_id=pid,
                    failure=ProviderFailure(
                        provider_id=pid,
                        kind=ProviderTimeout.kind,
                        message="Aggregation deadline exceeded",
                    ),
                )
            aggregator_provider_requests_total.labels(provider=pid).inc()
            started = time.perf_counter()
            try:
                forecast = await execute(
                    lambda: provider.fetch_weather_data(point.geo),
                    max_retries=options.max_retries,
                    timeout_ms=options.per_request_timeout_ms,
                    label=f"{pid} fetch",
                )
            except ProviderError as exc:
                aggregator_provider_errors_total.labels(
                    provider=pid, error_type=exc.kind
                ).inc()
                logger.info(
                    "aggregator.fetch.failed provider=%s kind=%s "
                    "lat=%.4f lon=%.4f err=%s",
                    pid,
                    exc.kind,
                    point.lat,
                    point.lon,
                    exc,
                )
                return _PairOutcome(
                    provider_id=pid,
                    failure=_failure_from(pid, exc),
                    fetched=True,
                )
            except Exception as exc:
                aggregator_provider_errors_total.labels(
                    provider=pid, error_type=exc.__class__.__name__
                ).inc()
                logger.exception(
                    "aggregator.fetch.crashed provider=%s lat=%.4f lon=%.4f",
                    pid,
                    point.lat,
                    point.lon,
                )
                return _PairOutcome(
                    provider_id=pid,
                    failure=_failure_from(pid, exc),
                    fetched=True,
                )
            finally:
                aggregator_provider_latency_seconds.labels(
                    provider=pid
                ).observe(time.perf_counter() - started)

        self.cache.put(key, forecast)
        return _PairOutcome(provider_id=pid, forecast=forecast, fetched=True)


_engine: AggregationEngine | None = None
_engine_lock = threading.Lock()


def init_engine(
    registry: ProviderRegistry | None = None,
    cache: ForecastCache | None = None,
    **options: object,
) -> AggregationEngine:
    """Build the process-wide engine, replacing any existing one."""

    global _engine
    engine = AggregationEngine(
        registry if registry is not None else build_registry(),
        cache if cache is not None else ForecastCache(),
        **options,  # type: ignore[arg-type]
    )
    with _engine_lock:
        _engine = engine
    logger.info(
        "aggregator.engine.initialized providers=%s", len(engine.registry)
    )
    return engine


def reset_engine() -> None:
    global _engine
    with _engine_lock:
        _engine = None


def get_engine() -> AggregationEngine:
    with _engine_lock:
        engine = _engine
    if engine is None:
        engine = init_engine()
    return engine


async def aggregate(
    points: Sequence[RoutePoint],
    requested_providers: Iterable[str] | None = None,
    options: AggregationSettings | None = None,
) -> AggregationResult:
    request = AggregationRequest(
        points=tuple(points),
        providers=tuple(requested_providers or ()),
        settings=options or default_settings(),
    )
    return await get_engine().aggregate(request)


def available_providers() -> set[str]:
    return get_engine().available_providers()


def cache_stats() -> CacheStats:
    return get_engine().cache_stats()


async def test_provider(provider_id: str) -> bool:
    return await get_engine().test_provider(provider_id)
