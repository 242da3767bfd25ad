from __future__ import annotations

import os
import time
from collections.abc import Mapping
from typing import Any, cast

import httpx
from django.conf import settings

from .base import (
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_VISIBILITY_M,
    dew_point,
    limits_for,
    number,
    positive_or_none,
    request_json,
    require_block,
    to_float,
)
from .conditions import from_owm_code
from .errors import NotConfigured, UpstreamError
from .ratelimit import ProviderRateLimiter
from .types import (
    CanonicalForecast,
    GeoPoint,
    ProviderConfig,
    ProviderId,
    RateLimitState,
    WeatherCondition,
)


class OpenWeatherMapProvider:
    """OpenWeatherMap `/weather` adapter.

    `units=metric` values are already canonical.
    """

    provider_id: ProviderId = "openweathermap"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        limiter: ProviderRateLimiter | None = None,
    ) -> None:
        per_minute, per_day = limits_for(self.provider_id)
        key = (
            api_key
            or getattr(settings, "OPENWEATHER_API_KEY", None)
            or os.getenv("OPENWEATHER_API_KEY")
        )
        self.config = ProviderConfig(
            id=self.provider_id,
            name="OpenWeatherMap",
            base_url=(
                base_url
                or cast(
                    str,
                    getattr(
                        settings,
                        "OPENWEATHER_BASE_URL",
                        "https://api.openweathermap.org/data/2.5",
                    ),
                )
            ).rstrip("/"),
            requests_per_minute=per_minute,
            requests_per_day=per_day,
            api_key=key or None,
        )
        self.timeout = timeout
        self.transport = transport
        self.limiter = limiter or ProviderRateLimiter(
            self.provider_id,
            requests_per_minute=per_minute,
            requests_per_day=per_day,
        )

    @property
    def id(self) -> ProviderId:
        return self.provider_id

    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    def can_make_request(self) -> bool:
        return self.limiter.can_make_request()

    def record_request(self) -> None:
        self.limiter.record_request()

    def rate_limit_state(self) -> RateLimitState:
        return self.limiter.snapshot()

    async def fetch_weather_data(self, point: GeoPoint) -> CanonicalForecast:
        if not self.is_configured():
            raise NotConfigured(
                "OpenWeatherMap API key not configured",
                provider_id=self.provider_id,
            )
        payload = await request_json(
            provider_id=self.provider_id,
            limiter=self.limiter,
            url=f"{self.config.base_url}/weather",
            params={
                "lat": point.lat,
                "lon": point.lon,
                "appid": self.config.api_key,
                "units": "metric",
            },
            timeout=self.timeout,
            transport=self.transport,
        )
        return self._to_forecast(payload, point)

    def _to_forecast(
        self, payload: Mapping[str, Any], point: GeoPoint
    ) -> CanonicalForecast:
        main = require_block(payload, "main", self.provider_id)
        temp = to_float(main.get("temp"))
        if temp is None:
            raise UpstreamError(
                "OpenWeatherMap response has no temperature",
                provider_id=self.provider_id,
            )
        humidity = number(main.get("humidity"), 0.0)
        wind = _block(payload, "wind")
        clouds = _block(payload, "clouds")
        rain = _block(payload, "rain")
        snow = _block(payload, "snow")

        return CanonicalForecast(
            lat=point.lat,
            lon=point.lon,
            dt=int(number(payload.get("dt"), time.time())),
            temp=temp,
            feels_like=number(main.get("feels_like"), temp),
            pressure=number(main.get("pressure"), 0.0),
            humidity=humidity,
            dew_point=dew_point(temp, humidity),
            uvi=0.0,
            clouds=number(clouds.get("all"), 0.0),
            visibility=number(payload.get("visibility"), DEFAULT_VISIBILITY_M),
            wind_speed=number(wind.get("speed"), 0.0),
            wind_deg=number(wind.get("deg"), 0.0),
            wind_gust=to_float(wind.get("gust")),
            rain_1h=positive_or_none(to_float(rain.get("1h"))),
            snow_1h=positive_or_none(to_float(snow.get("1h"))),
            weather=self._conditions(payload.get("weather")),
            source=self.provider_id,
            fetched_at=int(time.time()),
        )

    def _conditions(self, raw: Any) -> tuple[WeatherCondition, ...]:
        if not isinstance(raw, list):
            return (from_owm_code(0, "", None),)
        conditions: list[WeatherCondition] = []
        for item in raw:
            if not isinstance(item, Mapping):
                continue
            code = to_float(item.get("id"))
            conditions.append(
                from_owm_code(
                    int(code) if code is not None else 0,
                    str(item.get("description") or ""),
                    item.get("icon"),
                )
            )
        return tuple(conditions) or (from_owm_code(0, "", None),)


def _block(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, Mapping) else {}
