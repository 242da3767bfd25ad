from __future__ import annotations

# ruff: noqa: S101
from collections.abc import Iterator
from typing import Any

import pytest
from rest_framework.test import APIRequestFactory

from aggregator import services
from aggregator.engines.errors import UpstreamError
from aggregator.engines.registry import ProviderRegistry
from aggregator.serializers import (
    AggregateRequestSerializer,
    AggregationSettingsSerializer,
)
from aggregator.services import AggregationEngine
from aggregator.tests.fakes import FakeClock, FakeProvider, fresh_cache
from aggregator.views import (
    ForecastAggregateView,
    ForecastCacheStatsView,
    ForecastProvidersView,
    HealthView,
)

BERLIN = {"lat": 52.52, "lon": 13.405}


def _install(*providers: FakeProvider) -> AggregationEngine:
    clock = FakeClock()
    return services.init_engine(
        ProviderRegistry(providers), fresh_cache(clock), clock=clock
    )


@pytest.fixture(autouse=True)
def engine_reset() -> Iterator[None]:
    yield
    services.reset_engine()


def _post(payload: dict[str, Any]) -> Any:
    request = APIRequestFactory().post(
        "/api/v1/forecasts/aggregate/", payload, format="json"
    )
    return ForecastAggregateView.as_view()(request)


def _get(view: Any, path: str) -> Any:
    return view.as_view()(APIRequestFactory().get(path))


def test_aggregate_returns_envelope_with_points() -> None:
    _install(
        FakeProvider("open-meteo"),
        FakeProvider("weatherapi", configured=False),
    )

    response = _post(
        {
            "points": [BERLIN, {"lat": 48.8566, "lon": 2.3522}],
            "providers": [" Open-Meteo ", "weatherapi"],
            "settings": {"max_retries": 0},
        }
    )

    assert response.status_code == 200
    assert response.data["status"] == 0
    assert response.data["message"] == "OK"
    data = response.data["data"]
    assert data["providers"] == ["open-meteo", "weatherapi"]
    assert data["point_count"] == 2
    first = data["points"][0]
    assert first["point"]["lat"] == pytest.approx(52.52)
    assert first["primary"]["source"] == "open-meteo"
    assert first["errors"][0]["kind"] == "not_configured"
    assert first["consensus"] is None


def test_aggregate_rejects_empty_points() -> None:
    _install(FakeProvider("open-meteo"))

    response = _post({"points": []})

    assert response.status_code == 400
    assert response.data["status"] == 1
    assert response.data["message"] == "Invalid request"
    assert "points" in response.data["errors"]


def test_aggregate_rejects_out_of_range_coordinates() -> None:
    _install(FakeProvider("open-meteo"))

    response = _post({"points": [{"lat": 91, "lon": 0}]})

    assert response.status_code == 400
    assert "points" in response.data["errors"]


def test_aggregate_rejects_invalid_settings() -> None:
    _install(FakeProvider("open-meteo"))

    response = _post({"points": [BERLIN], "settings": {"max_retries": 9}})

    assert response.status_code == 400
    assert "settings" in response.data["errors"]


def test_forecast_interval_is_passed_through_without_resampling() -> None:
    provider = FakeProvider("open-meteo")
    _install(provider)
    points = [BERLIN, {"lat": 48.8566, "lon": 2.3522}]
    payload = {"points": points, "settings": {"forecast_interval_km": 50}}

    serializer = AggregateRequestSerializer(data=payload)
    assert serializer.is_valid(), serializer.errors
    assert serializer.to_request().settings.forecast_interval_km == 50.0
    field = AggregationSettingsSerializer().fields["forecast_interval_km"]
    assert "upstream" in str(field.help_text)

    response = _post(payload)

    assert response.status_code == 200
    assert response.data["data"]["point_count"] == 2
    assert len(provider.calls) == 2


def test_total_failure_maps_to_bad_gateway() -> None:
    _install(
        FakeProvider(
            "open-meteo",
            failures=[UpstreamError("down", status_code=500)],
        )
    )

    response = _post({"points": [BERLIN], "settings": {"max_retries": 0}})

    assert response.status_code == 502
    assert response.data["status"] == 1
    assert response.data["data"] is None
    assert response.data["errors"] == [
        {
            "provider_id": "open-meteo",
            "kind": "upstream_error",
            "message": "down",
            "status_code": 500,
        }
    ]


def test_deadline_is_reported_in_message() -> None:
    _install(
        FakeProvider("open-meteo"),
        FakeProvider("openweathermap", delay=1.0),
    )

    response = _post(
        {
            "points": [BERLIN],
            "settings": {"max_retries": 0, "overall_timeout_ms": 100},
        }
    )

    assert response.status_code == 200
    assert response.data["message"] == (
        "Partial result: aggregation deadline exceeded"
    )
    assert response.data["data"]["timed_out"] is True


def test_providers_endpoint_lists_status() -> None:
    _install(
        FakeProvider("open-meteo"),
        FakeProvider("visual-crossing", configured=False),
    )

    response = _get(ForecastProvidersView, "/api/v1/forecasts/providers/")

    assert response.status_code == 200
    data = response.data["data"]
    assert data["available"] == ["open-meteo"]
    by_id = {p["id"]: p for p in data["providers"]}
    assert by_id["visual-crossing"]["configured"] is False
    assert by_id["open-meteo"]["rate_limit"]["requests_this_minute"] == 0


def test_cache_stats_endpoint_reflects_requests() -> None:
    _install(FakeProvider("open-meteo"))
    _post({"points": [BERLIN]})
    _post({"points": [BERLIN]})

    response = _get(ForecastCacheStatsView, "/api/v1/forecasts/cache/stats/")

    data = response.data["data"]
    assert data["entry_count"] == 1
    assert data["hit_count"] == 1
    assert data["miss_count"] == 1
    assert data["hit_rate"] == pytest.approx(0.5)


def test_health_endpoint_healthy() -> None:
    _install(FakeProvider("open-meteo"))

    response = _get(HealthView, "/api/v1/health/")

    assert response.status_code == 200
    assert response.data["message"] == "healthy"
    assert response.data["data"]["status"] == "healthy"


def test_health_endpoint_unavailable_when_degraded() -> None:
    _install(
        FakeProvider("open-meteo"),
        FakeProvider(
            "openweathermap",
            failures=[UpstreamError("down", status_code=503)],
        ),
    )

    response = _get(HealthView, "/api/v1/health/")

    assert response.status_code == 503
    assert response.data["status"] == 1
    assert response.data["message"] == "degraded"
    assert response.data["data"]["services"]["openweathermap"] == "unhealthy"
    assert response.data["errors"] == [
        "Weather provider openweathermap failed its probe"
    ]
