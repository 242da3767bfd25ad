from __future__ import annotations

from collections.abc import Sequence
from typing import Any, ClassVar

from django.conf import settings
from rest_framework import serializers

from config.api.responses import JSONValue

from .engines.types import (
    AggregationRequest,
    AggregationResult,
    AggregationSettings,
    RoutePoint,
)
from .services import default_settings

MAX_POINTS = int(getattr(settings, "AGGREGATOR_MAX_POINTS", 50))
MAX_REQUEST_POINTS = MAX_POINTS * 20


class RoutePointSerializer(serializers.Serializer):
    lat: ClassVar[serializers.FloatField] = serializers.FloatField(
        min_value=-90.0, max_value=90.0
    )
    lon: ClassVar[serializers.FloatField] = serializers.FloatField(
        min_value=-180.0, max_value=180.0
    )
    distance: ClassVar[serializers.FloatField] = serializers.FloatField(
        min_value=0.0, required=False, default=0.0
    )
    estimated_time: ClassVar[serializers.DateTimeField] = (
        serializers.DateTimeField(
            required=False, allow_null=True, default=None
        )
    )
    elevation: ClassVar[serializers.FloatField] = serializers.FloatField(
        required=False, allow_null=True, default=None
    )


class AggregationSettingsSerializer(serializers.Serializer):
    max_points: ClassVar[serializers.IntegerField] = serializers.IntegerField(
        min_value=1, max_value=MAX_POINTS, required=False
    )
    forecast_interval_km: ClassVar[serializers.FloatField] = (
        serializers.FloatField(
            min_value=0.1,
            max_value=500.0,
            required=False,
            help_text=(
                "Spacing the route sampler used upstream. Echoed into the "
                "request settings; points are never resampled here."
            ),
        )
    )
    per_request_timeout_ms: ClassVar[serializers.IntegerField] = (
        serializers.IntegerField(
            min_value=100, max_value=60_000, required=False
        )
    )
    max_retries: ClassVar[serializers.IntegerField] = serializers.IntegerField(
        min_value=0, max_value=5, required=False
    )
    overall_timeout_ms: ClassVar[serializers.IntegerField] = (
        serializers.IntegerField(
            min_value=100, max_value=120_000, required=False
        )
    )


class AggregateRequestSerializer(serializers.Serializer):
    points = RoutePointSerializer(
        many=True, allow_empty=False, max_length=MAX_REQUEST_POINTS
    )
    providers: ClassVar[serializers.ListField] = serializers.ListField(
        child=serializers.CharField(max_length=64),
        required=False,
        default=list,
    )
    settings: ClassVar[AggregationSettingsSerializer] = (
        AggregationSettingsSerializer(required=False)
    )

    def validate_providers(self, value: Sequence[str]) -> list[str]:
        return [item.strip().lower() for item in value if item.strip()]

    def to_request(self) -> AggregationRequest:
        """Build the engine request from validated data."""

        data: dict[str, Any] = self.validated_data
        overrides = data.get("settings") or {}
        base = default_settings()
        options = AggregationSettings(
            max_points=overrides.get("max_points", base.max_points),
            forecast_interval_km=overrides.get(
                "forecast_interval_km", base.forecast_interval_km
            ),
            per_request_timeout_ms=overrides.get(
                "per_request_timeout_ms", base.per_request_timeout_ms
            ),
            max_retries=overrides.get("max_retries", base.max_retries),
            overall_timeout_ms=overrides.get(
                "overall_timeout_ms", base.overall_timeout_ms
            ),
        )
        points = tuple(
            RoutePoint(
                lat=float(item["lat"]),
                lon=float(item["lon"]),
                distance=float(item.get("distance") or 0.0),
                estimated_time=item.get("estimated_time"),
                elevation=item.get("elevation"),
            )
            for item in data["points"]
        )
        return AggregationRequest(
            points=points,
            providers=tuple(data.get("providers") or ()),
            settings=options,
        )


class WeatherConditionSerializer(serializers.Serializer):
    id: ClassVar[serializers.IntegerField] = serializers.IntegerField()
    main: ClassVar[serializers.CharField] = serializers.CharField()
    description: ClassVar[serializers.CharField] = serializers.CharField()
    icon: ClassVar[serializers.CharField] = serializers.CharField()


class ForecastSerializer(serializers.Serializer):
    source: ClassVar[serializers.CharField] = serializers.CharField()  # type: ignore[misc,assignment]
    lat: ClassVar[serializers.FloatField] = serializers.FloatField()
    lon: ClassVar[serializers.FloatField] = serializers.FloatField()
    dt: ClassVar[serializers.IntegerField] = serializers.IntegerField()
    temp: ClassVar[serializers.FloatField] = serializers.FloatField()
    feels_like: ClassVar[serializers.FloatField] = serializers.FloatField()
    pressure: ClassVar[serializers.FloatField] = serializers.FloatField()
    humidity: ClassVar[serializers.FloatField] = serializers.FloatField()
    dew_point: ClassVar[serializers.FloatField] = serializers.FloatField()
    uvi: ClassVar[serializers.FloatField] = serializers.FloatField()
    clouds: ClassVar[serializers.FloatField] = serializers.FloatField()
    visibility: ClassVar[serializers.FloatField] = serializers.FloatField()
    wind_speed: ClassVar[serializers.FloatField] = serializers.FloatField()
    wind_deg: ClassVar[serializers.FloatField] = serializers.FloatField()
    wind_gust: ClassVar[serializers.FloatField] = serializers.FloatField(
        allow_null=True
    )
    rain_1h: ClassVar[serializers.FloatField] = serializers.FloatField(
        allow_null=True
    )
    snow_1h: ClassVar[serializers.FloatField] = serializers.FloatField(
        allow_null=True
    )
    weather: ClassVar[WeatherConditionSerializer] = WeatherConditionSerializer(
        many=True
    )
    fetched_at: ClassVar[serializers.IntegerField] = serializers.IntegerField()


class ProviderFailureSerializer(serializers.Serializer):
    provider_id: ClassVar[serializers.CharField] = serializers.CharField()
    kind: ClassVar[serializers.CharField] = serializers.CharField()
    message: ClassVar[serializers.CharField] = serializers.CharField()
    status_code: ClassVar[serializers.IntegerField] = serializers.IntegerField(
        allow_null=True
    )


class WeatherAlertSerializer(serializers.Serializer):
    type: ClassVar[serializers.CharField] = serializers.CharField()
    severity: ClassVar[serializers.CharField] = serializers.CharField()
    title: ClassVar[serializers.CharField] = serializers.CharField()
    description: ClassVar[serializers.CharField] = serializers.CharField()


class MetricConsensusSerializer(serializers.Serializer):
    value: ClassVar[serializers.FloatField] = serializers.FloatField()
    spread: ClassVar[serializers.FloatField] = serializers.FloatField()
    sources: ClassVar[serializers.ListField] = serializers.ListField(
        child=serializers.CharField()
    )


class ConsensusSerializer(serializers.Serializer):
    temp = MetricConsensusSerializer()
    humidity = MetricConsensusSerializer()
    wind_speed = MetricConsensusSerializer()
    wind_deg = MetricConsensusSerializer()
    pressure = MetricConsensusSerializer()
    clouds = MetricConsensusSerializer()
    precipitation = MetricConsensusSerializer()
    condition: ClassVar[serializers.CharField] = serializers.CharField()
    icon: ClassVar[serializers.CharField] = serializers.CharField()


class ValueRangeSerializer(serializers.Serializer):
    min: ClassVar[serializers.FloatField] = serializers.FloatField()
    max: ClassVar[serializers.FloatField] = serializers.FloatField()
    diff: ClassVar[serializers.FloatField] = serializers.FloatField()


class SourceComparisonSerializer(serializers.Serializer):
    temp_range = ValueRangeSerializer()
    humidity_range = ValueRangeSerializer()
    wind_speed_range = ValueRangeSerializer()
    precipitation_range = ValueRangeSerializer()
    agreement_score: ClassVar[serializers.FloatField] = (
        serializers.FloatField()
    )
    outlier_sources: ClassVar[serializers.ListField] = serializers.ListField(
        child=serializers.CharField()
    )


class PointResultSerializer(serializers.Serializer):
    point = RoutePointSerializer()
    forecasts = ForecastSerializer(many=True)
    errors = ProviderFailureSerializer(many=True)
    primary = ForecastSerializer(allow_null=True)
    alerts = WeatherAlertSerializer(many=True)
    consensus = ConsensusSerializer(allow_null=True)
    comparison = SourceComparisonSerializer(allow_null=True)


class AggregationResultSerializer(serializers.Serializer):
    points = PointResultSerializer(many=True)
    providers: ClassVar[serializers.ListField] = serializers.ListField(
        child=serializers.CharField()
    )
    available_providers: ClassVar[serializers.ListField] = (
        serializers.ListField(child=serializers.CharField())
    )
    point_count: ClassVar[serializers.IntegerField] = (
        serializers.IntegerField()
    )
    dropped_points: ClassVar[serializers.IntegerField] = (
        serializers.IntegerField()
    )
    cache_hits: ClassVar[serializers.IntegerField] = serializers.IntegerField()
    upstream_fetches: ClassVar[serializers.IntegerField] = (
        serializers.IntegerField()
    )
    timed_out: ClassVar[serializers.BooleanField] = serializers.BooleanField()
    duration_ms: ClassVar[serializers.FloatField] = serializers.FloatField()


class RateLimitStateSerializer(serializers.Serializer):
    requests_this_minute: ClassVar[serializers.IntegerField] = (
        serializers.IntegerField()
    )
    requests_today: ClassVar[serializers.IntegerField] = (
        serializers.IntegerField()
    )
    minute_window_start: ClassVar[serializers.FloatField] = (
        serializers.FloatField()
    )
    day_window_start: ClassVar[serializers.FloatField] = (
        serializers.FloatField()
    )
    last_request_at: ClassVar[serializers.FloatField] = serializers.FloatField(
        allow_null=True
    )


class ProviderStatusSerializer(serializers.Serializer):
    id: ClassVar[serializers.CharField] = serializers.CharField()
    name: ClassVar[serializers.CharField] = serializers.CharField()
    configured: ClassVar[serializers.BooleanField] = serializers.BooleanField()
    available: ClassVar[serializers.BooleanField] = serializers.BooleanField()
    api_key_required: ClassVar[serializers.BooleanField] = (
        serializers.BooleanField()
    )
    requests_per_minute: ClassVar[serializers.IntegerField] = (
        serializers.IntegerField()
    )
    requests_per_day: ClassVar[serializers.IntegerField] = (
        serializers.IntegerField()
    )
    rate_limit = RateLimitStateSerializer()


class CacheStatsSerializer(serializers.Serializer):
    entry_count: ClassVar[serializers.IntegerField] = (
        serializers.IntegerField()
    )
    hit_count: ClassVar[serializers.IntegerField] = serializers.IntegerField()
    miss_count: ClassVar[serializers.IntegerField] = serializers.IntegerField()
    hit_rate: ClassVar[serializers.FloatField] = serializers.FloatField()
    oldest_entry_age: ClassVar[serializers.FloatField] = (
        serializers.FloatField(allow_null=True)
    )
    newest_entry_age: ClassVar[serializers.FloatField] = (
        serializers.FloatField(allow_null=True)
    )


def serialize_result(result: AggregationResult) -> dict[str, JSONValue]:
    return AggregationResultSerializer(result).data


def serialize_statuses(
    statuses: Sequence[object],
) -> list[dict[str, JSONValue]]:
    return list(ProviderStatusSerializer(statuses, many=True).data)


def serialize_cache_stats(stats: object) -> dict[str, JSONValue]:
    return CacheStatsSerializer(stats).data
