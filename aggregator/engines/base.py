from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping
from typing import Any, Protocol

import httpx
from django.conf import settings

from ..metrics import aggregator_rate_limit_rejections_total
from .errors import ProviderTimeout, RateLimited, UpstreamError
from .ratelimit import ProviderRateLimiter
from .types import (
    CanonicalForecast,
    GeoPoint,
    ProviderConfig,
    ProviderId,
    RateLimitState,
)

logger = logging.getLogger(__name__)

KMH_PER_MPS = 3.6
DEFAULT_VISIBILITY_M = 10_000.0
DEFAULT_TIMEOUT_SECONDS = 10.0

# (requests per minute, requests per day)
DEFAULT_LIMITS: dict[str, tuple[int, int]] = {
    "open-meteo": (600, 10_000),
    "weatherapi": (60, 1_000_000),
    "visual-crossing": (100, 1_000),
    "openweathermap": (60, 1_000),
}


def limits_for(provider_id: ProviderId) -> tuple[int, int]:
    """Return (per-minute, per-day) limits, honoring settings overrides."""

    configured = getattr(settings, "WEATHER_PROVIDER_LIMITS", {}) or {}
    override = configured.get(provider_id)
    per_minute, per_day = DEFAULT_LIMITS[provider_id]
    if isinstance(override, Mapping):
        per_minute = int(override.get("requests_per_minute", per_minute))
        per_day = int(override.get("requests_per_day", per_day))
    return per_minute, per_day


class WeatherProvider(Protocol):
    """Capability interface implemented by every upstream adapter."""

    config: ProviderConfig

    @property
    def id(self) -> ProviderId:
        """Stable provider identifier."""

    def is_configured(self) -> bool:
        """Return True when credentials required by the upstream exist."""

    def can_make_request(self) -> bool:
        """Return True while both rate-limit windows have capacity."""

    def record_request(self) -> None:
        """Count one upstream call against the rate-limit windows."""

    def rate_limit_state(self) -> RateLimitState:
        """Return a snapshot of the rate-limit counters."""

    async def fetch_weather_data(self, point: GeoPoint) -> CanonicalForecast:
        """Fetch current conditions for a point in canonical units."""


async def request_json(
    *,
    provider_id: ProviderId,
    limiter: ProviderRateLimiter,
    url: str,
    params: Mapping[str, Any],
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Issue one rate-limited GET and return the decoded JSON object.

    The rate-limit counter is incremented exactly once before the network
    call, whatever the outcome.
    """

    if not limiter.try_acquire():
        aggregator_rate_limit_rejections_total.labels(
            provider=provider_id
        ).inc()
        raise RateLimited(
            f"Rate limit exceeded for {provider_id}", provider_id=provider_id
        )

    started = time.perf_counter()
    try:
        async with httpx.AsyncClient(
            timeout=timeout, transport=transport
        ) as client:
            response = await client.get(url, params=dict(params))
    except httpx.TimeoutException as exc:
        raise ProviderTimeout(
            f"{provider_id} request timed out", provider_id=provider_id
        ) from exc
    except httpx.RequestError as exc:
        raise UpstreamError(
            f"{provider_id} transport error: {exc.__class__.__name__}",
            provider_id=provider_id,
        ) from exc
    finally:
        logger.debug(
            "provider.request provider=%s duration_ms=%.1f",
            provider_id,
            (time.perf_counter() - started) * 1000,
        )

    if response.status_code == 429:
        raise RateLimited(
            f"{provider_id} upstream rate limit exceeded",
            provider_id=provider_id,
        )
    if response.status_code in (401, 403):
        raise UpstreamError(
            f"Invalid {provider_id} API key",
            provider_id=provider_id,
            status_code=response.status_code,
        )
    if response.status_code >= 300:
        raise UpstreamError(
            f"{provider_id} API error: {response.status_code}",
            provider_id=provider_id,
            status_code=response.status_code,
        )
    try:
        data = response.json()
    except ValueError as exc:
        raise UpstreamError(
            f"{provider_id} returned a non-JSON body",
            provider_id=provider_id,
            status_code=response.status_code,
        ) from exc
    if not isinstance(data, dict):
        raise UpstreamError(
            f"Unexpected {provider_id} response shape",
            provider_id=provider_id,
            status_code=response.status_code,
        )
    return data


def require_block(
    payload: Mapping[str, Any], key: str, provider_id: ProviderId
) -> Mapping[str, Any]:
    block = payload.get(key)
    if not isinstance(block, Mapping):
        raise UpstreamError(
            f"{provider_id} response is missing '{key}'",
            provider_id=provider_id,
        )
    return block


def to_float(value: Any, default: float | None = None) -> float | None:
    try:
        if value is None:
            return default
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result):
        return default
    return result


def number(value: Any, default: float) -> float:
    result = to_float(value)
    return default if result is None else result


def kmh_to_mps(value: Any) -> float | None:
    kmh = to_float(value)
    if kmh is None:
        return None
    return kmh / KMH_PER_MPS


def dew_point(temp_c: float, humidity_pct: float) -> float:
    """Magnus approximation of the dew point in C."""

    if humidity_pct <= 0:
        return temp_c
    a, b = 17.27, 237.7
    alpha = (a * temp_c) / (b + temp_c) + math.log(humidity_pct / 100.0)
    return (b * alpha) / (a - alpha)


def positive_or_none(value: float | None) -> float | None:
    if value is None or value <= 0:
        return None
    return value
