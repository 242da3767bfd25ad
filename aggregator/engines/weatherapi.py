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
    kmh_to_mps,
    limits_for,
    number,
    positive_or_none,
    request_json,
    require_block,
    to_float,
)
from .conditions import category_from_text, icon_for_category
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


class WeatherApiProvider:
    """WeatherAPI.com `current.json` adapter.

    Native units: km/h for wind, km for visibility, mb (= hPa) for pressure.
    """

    provider_id: ProviderId = "weatherapi"

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
            or getattr(settings, "WEATHERAPI_KEY", None)
            or os.getenv("WEATHERAPI_KEY")
        )
        self.config = ProviderConfig(
            id=self.provider_id,
            name="WeatherAPI",
            base_url=(
                base_url
                or cast(
                    str,
                    getattr(
                        settings,
                        "WEATHERAPI_BASE_URL",
                        "https://api.weatherapi.com/v1",
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
                "WeatherAPI key not configured", provider_id=self.provider_id
            )
        payload = await request_json(
            provider_id=self.provider_id,
            limiter=self.limiter,
            url=f"{self.config.base_url}/current.json",
            params={
                "key": self.config.api_key,
                "q": f"{point.lat},{point.lon}",
                "aqi": "no",
            },
            timeout=self.timeout,
            transport=self.transport,
        )
        return self._to_forecast(payload, point)

    def _to_forecast(
        self, payload: Mapping[str, Any], point: GeoPoint
    ) -> CanonicalForecast:
        current = require_block(payload, "current", self.provider_id)
        temp = to_float(current.get("temp_c"))
        if temp is None:
            raise UpstreamError(
                "WeatherAPI response has no temperature",
                provider_id=self.provider_id,
            )
        humidity = number(current.get("humidity"), 0.0)
        vis_km = to_float(current.get("vis_km"))
        condition = current.get("condition")
        if not isinstance(condition, Mapping):
            condition = {}

        return CanonicalForecast(
            lat=point.lat,
            lon=point.lon,
            dt=int(number(current.get("last_updated_epoch"), time.time())),
            temp=temp,
            feels_like=number(current.get("feelslike_c"), temp),
            pressure=number(current.get("pressure_mb"), 0.0),
            humidity=humidity,
            dew_point=dew_point(temp, humidity),
            uvi=number(current.get("uv"), 0.0),
            clouds=number(current.get("cloud"), 0.0),
            visibility=(
                vis_km * 1000 if vis_km is not None else DEFAULT_VISIBILITY_M
            ),
            wind_speed=kmh_to_mps(current.get("wind_kph")) or 0.0,
            wind_deg=number(current.get("wind_degree"), 0.0),
            wind_gust=kmh_to_mps(current.get("gust_kph")),
            rain_1h=positive_or_none(to_float(current.get("precip_mm"))),
            weather=(self._condition(condition),),
            source=self.provider_id,
            fetched_at=int(time.time()),
        )

    def _condition(self, condition: Mapping[str, Any]) -> WeatherCondition:
        text = str(condition.get("text") or "")
        icon_url = str(condition.get("icon") or "")
        main, _ = category_from_text(text)
        code = to_float(condition.get("code"))
        return WeatherCondition(
            id=int(code) if code is not None else 0,
            main=main,
            description=text or main,
            icon=icon_for_category(main, night="night" in icon_url),
        )
