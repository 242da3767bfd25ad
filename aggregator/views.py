"""Forecast aggregation API endpoints.

Authentication: none; the endpoints are open.
Responses: wrapped by `config.api.responses.success_response`
(status/message/data/errors). Errors go through the project exception
handler, which maps `AggregationFailed` to 502.
"""

from __future__ import annotations

from typing import cast

from asgiref.sync import async_to_sync
from drf_spectacular.utils import extend_schema, inline_serializer
from rest_framework import serializers, status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from config.api.openapi import (
    error_envelope_serializer,
    success_envelope_serializer,
)
from config.api.responses import (
    JSONValue,
    error_response,
    success_response,
)

from .health import check_health
from .serializers import (
    AggregateRequestSerializer,
    AggregationResultSerializer,
    CacheStatsSerializer,
    ProviderStatusSerializer,
    serialize_cache_stats,
    serialize_result,
    serialize_statuses,
)
from .services import get_engine

aggregate_success_schema = success_envelope_serializer(
    "ForecastAggregateSuccess",
    data=AggregationResultSerializer(),
)
providers_success_schema = success_envelope_serializer(
    "ForecastProvidersSuccess",
    data=inline_serializer(
        name="ForecastProvidersData",
        fields={
            "available": serializers.ListField(child=serializers.CharField()),
            "providers": ProviderStatusSerializer(many=True),
        },
    ),
)
cache_stats_success_schema = success_envelope_serializer(
    "ForecastCacheStatsSuccess",
    data=CacheStatsSerializer(),
)
health_success_schema = success_envelope_serializer(
    "HealthSuccess",
    data=serializers.JSONField(),
)
forecast_error_schema = error_envelope_serializer("ForecastErrorResponse")
health_error_schema = error_envelope_serializer(
    "HealthUnavailable", data=serializers.JSONField()
)


class ForecastAggregateView(APIView):
    """Aggregate forecasts for route points across providers.

    Response: success envelope with one entry per processed point, in input
    order, each carrying per-provider forecasts and per-provider failures.
    """

    permission_classes = [AllowAny]

    @extend_schema(
        request=AggregateRequestSerializer,
        responses={
            200: aggregate_success_schema,
            400: forecast_error_schema,
            502: forecast_error_schema,
        },
    )
    def post(self, request: Request) -> Response:
        serializer = AggregateRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = async_to_sync(get_engine().aggregate)(serializer.to_request())
        message = "OK"
        if result.timed_out:
            message = "Partial result: aggregation deadline exceeded"
        return success_response(serialize_result(result), message=message)


class ForecastProvidersView(APIView):
    """List providers with configuration and rate-limit status."""

    permission_classes = [AllowAny]

    @extend_schema(responses={200: providers_success_schema})
    def get(self, request: Request) -> Response:
        engine = get_engine()
        available = sorted(engine.available_providers())
        statuses = serialize_statuses(engine.registry.statuses())
        return success_response(
            {
                "available": cast(JSONValue, available),
                "providers": cast(JSONValue, statuses),
            }
        )


class ForecastCacheStatsView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(responses={200: cache_stats_success_schema})
    def get(self, request: Request) -> Response:
        stats = get_engine().cache_stats()
        return success_response(serialize_cache_stats(stats))


class HealthView(APIView):
    """Cache round-trip plus one probe per configured provider.

    200 when healthy, 503 when degraded or unhealthy.
    """

    permission_classes = [AllowAny]

    @extend_schema(
        responses={200: health_success_schema, 503: health_error_schema}
    )
    def get(self, request: Request) -> Response:
        report = async_to_sync(check_health)()
        payload = cast(JSONValue, report.as_dict())
        if report.is_healthy:
            return success_response(payload, message="healthy")
        return error_response(
            report.status,
            data=payload,
            errors=cast(JSONValue, list(report.errors)),
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
