from __future__ import annotations

from django.urls import path

from .views import (
    ForecastAggregateView,
    ForecastCacheStatsView,
    ForecastProvidersView,
    HealthView,
)

urlpatterns = [
    path(
        "forecasts/aggregate/",
        ForecastAggregateView.as_view(),
        name="forecasts-aggregate",
    ),
    path(
        "forecasts/providers/",
        ForecastProvidersView.as_view(),
        name="forecasts-providers",
    ),
    path(
        "forecasts/cache/stats/",
        ForecastCacheStatsView.as_view(),
        name="forecasts-cache-stats",
    ),
    path("health/", HealthView.as_view(), name="health"),
]
