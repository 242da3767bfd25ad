from __future__ import annotations

import time
from collections.abc import Mapping
from datetime import datetime
from typing import Any, cast

import httpx
from django.conf import settings

from ..timeutils import to_epoch_seconds
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
from .conditions import from_wmo_code
from .errors import UpstreamError
from .ratelimit import ProviderRateLimiter
from .types import (
    CanonicalForecast,
    GeoPoint,
    ProviderConfig,
    ProviderId,
    RateLimitState,
)

CURRENT_FIELDS = (
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "precipitation",
    "weather_code",
    "cloud_cover",
    "pressure_msl",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
    "uv_index",
)


class OpenMeteoProvider:
    """Open-Meteo implementation.

    Free, keyless. Uses the `/forecast` endpoint with `current=` fields,
    wind already in m/s and timestamps as unix seconds.
    """

    provider_id: ProviderId = "open-meteo"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        limiter: ProviderRateLimiter | None = None,
    ) -> None:
        per_minute, per_day = limits_for(self.provider_id)
        self.config = ProviderConfig(
            id=self.provider_id,
            name="Open-Meteo",
            base_url=(
                base_url
                or cast(
                    str,
                    getattr(
                        settings,
                        "OPEN_METEO_BASE_URL",
                        "https://api.open-meteo.com/v1",
                    ),
                )
            ).rstrip("/"),
            requests_per_minute=per_minute,
            requests_per_day=per_day,
            api_key_required=False,
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
        return True

    def can_make_request(self) -> bool:
        return self.limiter.can_make_request()

    def record_request(self) -> None:
        self.limiter.record_request()

    def rate_limit_state(self) -> RateLimitState:
        return self.limiter.snapshot()

    async def fetch_weather_data(self, point: GeoPoint) -> CanonicalForecast:
        params = {
            "latitude": point.lat,
            "longitude": point.lon,
            "current": ",".join(CURRENT_FIELDS),
            "wind_speed_unit": "ms",
            "timeformat": "unixtime",
            "timezone": "GMT",
        }
        payload = await self._request(params)
        return self._to_forecast(payload, point)

    async def _request(self, params: dict[str, Any]) -> dict[str, Any]:
        return await request_json(
            provider_id=self.provider_id,
            limiter=self.limiter,
            url=f"{self.config.base_url}/forecast",
            params=params,
            timeout=self.timeout,
            transport=self.transport,
        )

    def _to_forecast(
        self, payload: Mapping[str, Any], point: GeoPoint
    ) -> CanonicalForecast:
        current = require_block(payload, "current", self.provider_id)
        temp = to_float(current.get("temperature_2m"))
        if temp is None:
            raise UpstreamError(
                "Open-Meteo response has no temperature",
                provider_id=self.provider_id,
            )
        humidity = number(current.get("relative_humidity_2m"), 0.0)
        code = to_float(current.get("weather_code"))
        precipitation = to_float(current.get("precipitation"))

        return CanonicalForecast(
            lat=point.lat,
            lon=point.lon,
            dt=self._parse_time(current.get("time")),
            temp=temp,
            feels_like=number(current.get("apparent_temperature"), temp),
            pressure=number(current.get("pressure_msl"), 0.0),
            humidity=humidity,
            dew_point=dew_point(temp, humidity),
            uvi=number(current.get("uv_index"), 0.0),
            clouds=number(current.get("cloud_cover"), 0.0),
            visibility=DEFAULT_VISIBILITY_M,
            wind_speed=number(current.get("wind_speed_10m"), 0.0),
            wind_deg=number(current.get("wind_direction_10m"), 0.0),
            wind_gust=to_float(current.get("wind_gusts_10m")),
            rain_1h=positive_or_none(precipitation),
            weather=(from_wmo_code(int(code) if code is not None else None),),
            source=self.provider_id,
            fetched_at=int(time.time()),
        )

    def _parse_time(self, raw: Any) -> int:
        if isinstance(raw, int | float):
            return int(raw)
        if isinstance(raw, str):
            candidate = raw.replace("Z", "+00:00")
            try:
                return to_epoch_seconds(datetime.fromisoformat(candidate))
            except ValueError:
                pass
        return int(time.time())
