"""Service health built from a cache round-trip and one probe per provider."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from .cache import CacheStats
from .services import AggregationEngine, get_engine

logger = logging.getLogger(__name__)

HealthStatus = Literal["healthy", "degraded", "unhealthy"]
ComponentStatus = Literal["healthy", "unhealthy", "not_configured"]


@dataclass(frozen=True)
class HealthReport:
    status: HealthStatus
    checked_at: datetime
    cache: ComponentStatus
    providers: dict[str, ComponentStatus] = field(default_factory=dict)
    cache_stats: CacheStats | None = None
    errors: tuple[str, ...] = ()

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "checked_at": self.checked_at.isoformat(),
            "services": {"forecast_cache": self.cache, **self.providers},
            "cache_stats": (
                self.cache_stats.as_dict() if self.cache_stats else None
            ),
            "errors": list(self.errors),
        }


def summarize(
    cache_ok: bool, probes: dict[str, bool]
) -> tuple[HealthStatus, list[str]]:
    """Fold component results into one status.

    No working provider is unhealthy. A failed cache or a failed provider,
    with at least one provider still working, is degraded.
    """

    errors: list[str] = []
    if not cache_ok:
        errors.append("Forecast cache is unavailable")
    failed = sorted(pid for pid, ok in probes.items() if not ok)
    errors.extend(f"Weather provider {pid} failed its probe" for pid in failed)

    if not any(probes.values()):
        if not probes:
            errors.append("No weather providers are configured")
        return "unhealthy", errors
    if errors:
        return "degraded", errors
    return "healthy", errors


async def check_health(
    engine: AggregationEngine | None = None,
) -> HealthReport:
    engine = engine or get_engine()
    cache_ok = engine.cache.probe()
    stats: CacheStats | None = engine.cache_stats() if cache_ok else None

    configured = engine.registry.configured_providers()
    outcomes = await asyncio.gather(
        *(engine.test_provider(pid) for pid in configured)
    )
    probes = dict(zip(configured, outcomes, strict=True))

    providers: dict[str, ComponentStatus] = {}
    for pid in engine.registry.provider_ids():
        if pid not in probes:
            providers[pid] = "not_configured"
        else:
            providers[pid] = "healthy" if probes[pid] else "unhealthy"

    status, errors = summarize(cache_ok, probes)
    if status != "healthy":
        logger.warning(
            "aggregator.health status=%s errors=%s", status, "; ".join(errors)
        )
    return HealthReport(
        status=status,
        checked_at=datetime.now(tz=UTC),
        cache="healthy" if cache_ok else "unhealthy",
        providers=providers,
        cache_stats=stats,
        errors=tuple(errors),
    )
