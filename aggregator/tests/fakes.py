"""In-process providers and clocks shared by the aggregator tests."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from django.core.cache.backends.locmem import LocMemCache

from aggregator.cache import ForecastCache
from aggregator.engines.errors import NotConfigured, RateLimited
from aggregator.engines.ratelimit import ProviderRateLimiter
from aggregator.engines.types import (
    CanonicalForecast,
    GeoPoint,
    ProviderConfig,
    ProviderId,
    RateLimitState,
    WeatherCondition,
)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_forecast(
    lat: float = 52.52,
    lon: float = 13.405,
    *,
    source: ProviderId = "open-meteo",
    temp: float = 12.0,
    humidity: float = 70.0,
    wind_speed: float = 3.0,
    visibility: float = 10_000.0,
    rain_1h: float | None = None,
    snow_1h: float | None = None,
    main: str = "Clouds",
    icon: str = "03d",
) -> CanonicalForecast:
    return CanonicalForecast(
        lat=lat,
        lon=lon,
        dt=1_700_000_000,
        temp=temp,
        feels_like=temp - 1.0,
        pressure=1013.0,
        humidity=humidity,
        dew_point=6.7,
        uvi=1.0,
        clouds=40.0,
        visibility=visibility,
        wind_speed=wind_speed,
        wind_deg=220.0,
        weather=(
            WeatherCondition(
                id=803, main=main, description=main.lower(), icon=icon
            ),
        ),
        source=source,
        fetched_at=1_700_000_000,
        rain_1h=rain_1h,
        snow_1h=snow_1h,
    )


class FakeProvider:
    """Protocol-compatible provider that never touches the network."""

    def __init__(
        self,
        provider_id: ProviderId = "open-meteo",
        *,
        configured: bool = True,
        requests_per_minute: int = 600,
        requests_per_day: int = 10_000,
        temp: float = 12.0,
        delay: float = 0.0,
        failures: list[Exception] | None = None,
    ) -> None:
        self.config = ProviderConfig(
            id=provider_id,
            name=provider_id.title(),
            base_url="http://fake.invalid",
            requests_per_minute=requests_per_minute,
            requests_per_day=requests_per_day,
            api_key="key" if configured else None,
        )
        self.configured = configured
        self.limiter = ProviderRateLimiter(
            provider_id,
            requests_per_minute=requests_per_minute,
            requests_per_day=requests_per_day,
        )
        self.temp = temp
        self.delay = delay
        self.failures = list(failures or [])
        self.calls: list[GeoPoint] = []

    @property
    def id(self) -> ProviderId:
        return self.config.id

    def is_configured(self) -> bool:
        return self.configured

    def can_make_request(self) -> bool:
        return self.limiter.can_make_request()

    def record_request(self) -> None:
        self.limiter.record_request()

    def rate_limit_state(self) -> RateLimitState:
        return self.limiter.snapshot()

    async def fetch_weather_data(self, point: GeoPoint) -> CanonicalForecast:
        if not self.configured:
            raise NotConfigured("missing key", provider_id=self.id)
        if not self.limiter.try_acquire():
            raise RateLimited("exhausted", provider_id=self.id)
        self.calls.append(point)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)
        return make_forecast(
            point.lat, point.lon, source=self.id, temp=self.temp
        )


class BrokenBackend:
    """Cache backend whose every call fails like an unreachable server."""

    def get(self, key: str, default: Any = None) -> Any:
        raise ConnectionError("cache down")

    def set(self, key: str, value: Any, timeout: Any = None) -> None:
        raise ConnectionError("cache down")

    def delete(self, key: str) -> None:
        raise ConnectionError("cache down")


def fresh_cache(
    clock: FakeClock | None = None, **options: float
) -> ForecastCache:
    backend = LocMemCache(f"test-{time.perf_counter_ns()}", {})
    return ForecastCache(
        backend=backend,
        clock=clock or time.time,
        **options,  # type: ignore[arg-type]
    )
