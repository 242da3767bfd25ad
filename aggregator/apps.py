from __future__ import annotations

from django.apps import AppConfig


class AggregatorConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "aggregator"
    verbose_name = "Forecast aggregator"
