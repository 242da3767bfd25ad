from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

ProviderId = Literal[
    "open-meteo", "weatherapi", "visual-crossing", "openweathermap"
]


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float

    def rounded(self, precision: int) -> GeoPoint:
        return GeoPoint(round(self.lat, precision), round(self.lon, precision))


@dataclass(frozen=True)
class RoutePoint:
    """One sampled coordinate along a route."""

    lat: float
    lon: float
    distance: float = 0.0
    estimated_time: datetime | None = None
    elevation: float | None = None

    @property
    def geo(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lon)


@dataclass(frozen=True)
class WeatherCondition:
    id: int
    main: str
    description: str
    icon: str


@dataclass(frozen=True)
class CanonicalForecast:
    """Provider-agnostic snapshot.

    Units: temperatures in C, pressure in hPa, visibility in meters,
    wind in m/s, precipitation in mm over the last hour.
    """

    lat: float
    lon: float
    dt: int
    temp: float
    feels_like: float
    pressure: float
    humidity: float
    dew_point: float
    uvi: float
    clouds: float
    visibility: float
    wind_speed: float
    wind_deg: float
    weather: tuple[WeatherCondition, ...]
    source: ProviderId
    fetched_at: int
    wind_gust: float | None = None
    rain_1h: float | None = None
    snow_1h: float | None = None

    @property
    def precipitation(self) -> float:
        return (self.rain_1h or 0.0) + (self.snow_1h or 0.0)


@dataclass(frozen=True)
class ProviderConfig:
    id: ProviderId
    name: str
    base_url: str
    requests_per_minute: int
    requests_per_day: int
    api_key: str | None = None
    api_key_required: bool = True


@dataclass(frozen=True)
class RateLimitState:
    provider_id: ProviderId
    requests_this_minute: int
    requests_today: int
    minute_window_start: float
    day_window_start: float
    last_request_at: float | None = None


@dataclass(frozen=True)
class AggregationSettings:
    max_points: int = 50
    forecast_interval_km: float = 5.0
    per_request_timeout_ms: int = 10_000
    max_retries: int = 2
    overall_timeout_ms: int = 30_000


@dataclass(frozen=True)
class AggregationRequest:
    points: Sequence[RoutePoint]
    providers: Sequence[str] = ()
    settings: AggregationSettings = field(default_factory=AggregationSettings)


@dataclass(frozen=True)
class ProviderFailure:
    provider_id: str
    kind: str
    message: str
    status_code: int | None = None


@dataclass(frozen=True)
class WeatherAlert:
    type: Literal["wind", "temperature", "precipitation", "visibility"]
    severity: Literal["low", "medium", "high", "extreme"]
    title: str
    description: str


@dataclass(frozen=True)
class MetricConsensus:
    value: float
    spread: float
    sources: tuple[str, ...]


@dataclass(frozen=True)
class ConsensusForecast:
    temp: MetricConsensus
    humidity: MetricConsensus
    wind_speed: MetricConsensus
    wind_deg: MetricConsensus
    pressure: MetricConsensus
    clouds: MetricConsensus
    precipitation: MetricConsensus
    condition: str
    icon: str


@dataclass(frozen=True)
class ValueRange:
    min: float
    max: float
    diff: float


@dataclass(frozen=True)
class SourceComparison:
    temp_range: ValueRange
    humidity_range: ValueRange
    wind_speed_range: ValueRange
    precipitation_range: ValueRange
    agreement_score: float
    outlier_sources: tuple[str, ...]


@dataclass(frozen=True)
class PointResult:
    point: RoutePoint
    forecasts: Sequence[CanonicalForecast]
    errors: Sequence[ProviderFailure]
    primary: CanonicalForecast | None = None
    alerts: Sequence[WeatherAlert] = ()
    consensus: ConsensusForecast | None = None
    comparison: SourceComparison | None = None


@dataclass(frozen=True)
class AggregationResult:
    points: Sequence[PointResult]
    providers: Sequence[str]
    available_providers: Sequence[str]
    point_count: int
    dropped_points: int
    cache_hits: int
    upstream_fetches: int
    timed_out: bool
    duration_ms: float

    @property
    def succeeded(self) -> int:
        return sum(len(p.forecasts) for p in self.points)
