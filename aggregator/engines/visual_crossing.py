from __future__ import annotations

import os
import time
from collections.abc import Mapping
from typing import Any, cast

import httpx
from django.conf import settings

from .base import (
    DEFAULT_TIMEOUT_SECONDS,
    dew_point,
    kmh_to_mps,
    limits_for,
    number,
    positive_or_none,
    request_json,
    require_block,
    to_float,
)
from .conditions import (
    DEFAULT_ICON,
    VISUAL_CROSSING_ICONS,
    category_from_text,
)
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


class VisualCrossingProvider:
    """Visual Crossing timeline adapter (`include=current`).

    Metric unit group still reports wind in km/h and visibility in km.
    """

    provider_id: ProviderId = "visual-crossing"

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
            or getattr(settings, "VISUAL_CROSSING_API_KEY", None)
            or os.getenv("VISUAL_CROSSING_API_KEY")
        )
        self.config = ProviderConfig(
            id=self.provider_id,
            name="Visual Crossing",
            base_url=(
                base_url
                or cast(
                    str,
                    getattr(
                        settings,
                        "VISUAL_CROSSING_BASE_URL",
                        "https://weather.visualcrossing.com/"
                        "VisualCrossingWebServices/rest/services/timeline",
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
                "Visual Crossing API key not configured",
                provider_id=self.provider_id,
            )
        payload = await request_json(
            provider_id=self.provider_id,
            limiter=self.limiter,
            url=f"{self.config.base_url}/{point.lat},{point.lon}/today",
            params={
                "unitGroup": "metric",
                "key": self.config.api_key,
                "include": "current",
                "contentType": "json",
            },
            timeout=self.timeout,
            transport=self.transport,
        )
        return self._to_forecast(payload, point)

    def _to_forecast(
        self, payload: Mapping[str, Any], point: GeoPoint
    ) -> CanonicalForecast:
        current = require_block(payload, "currentConditions", self.provider_id)
        temp = to_float(current.get("temp"))
        if temp is None:
            raise UpstreamError(
                "Visual Crossing response has no temperature",
                provider_id=self.provider_id,
            )
        humidity = number(current.get("humidity"), 0.0)
        dew = to_float(current.get("dew"))
        visibility_km = number(current.get("visibility"), 10.0)

        return CanonicalForecast(
            lat=point.lat,
            lon=point.lon,
            dt=int(number(current.get("datetimeEpoch"), time.time())),
            temp=temp,
            feels_like=number(current.get("feelslike"), temp),
            pressure=number(current.get("pressure"), 0.0),
            humidity=humidity,
            dew_point=dew if dew is not None else dew_point(temp, humidity),
            uvi=number(current.get("uvindex"), 0.0),
            clouds=number(current.get("cloudcover"), 0.0),
            visibility=visibility_km * 1000,
            wind_speed=kmh_to_mps(current.get("windspeed")) or 0.0,
            wind_deg=number(current.get("winddir"), 0.0),
            wind_gust=kmh_to_mps(current.get("windgust")),
            rain_1h=positive_or_none(to_float(current.get("precip"))),
            snow_1h=positive_or_none(to_float(current.get("snow"))),
            weather=(
                self._condition(
                    str(current.get("conditions") or ""),
                    str(current.get("icon") or ""),
                ),
            ),
            source=self.provider_id,
            fetched_at=int(time.time()),
        )

    def _condition(self, conditions: str, icon: str) -> WeatherCondition:
        main, code = category_from_text(conditions)
        return WeatherCondition(
            id=code,
            main=main,
            description=conditions or main,
            icon=VISUAL_CROSSING_ICONS.get(icon, DEFAULT_ICON),
        )
