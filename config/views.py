"""Root landing endpoint: service identity plus where to go next."""

from __future__ import annotations

from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.urls import reverse


def home(request: HttpRequest) -> JsonResponse:
    spectacular = getattr(settings, "SPECTACULAR_SETTINGS", {})
    return JsonResponse(
        {
            "ok": True,
            "service": "routecast",
            "version": spectacular.get("VERSION"),
            "docs": reverse("swagger-ui"),
            "redoc": reverse("redoc"),
            "health": reverse("health"),
            "aggregate": reverse("forecasts-aggregate"),
        }
    )
