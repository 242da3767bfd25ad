from __future__ import annotations

# ruff: noqa: S101
from decimal import Decimal
from unittest.mock import patch

from django.test import Client
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response

from aggregator.engines.errors import AggregationFailed
from aggregator.engines.types import ProviderFailure
from config.api.exceptions import _to_json_value, custom_exception_handler
from config.api.responses import error_response, success_response


def test_error_response_payload() -> None:
    resp = error_response(
        "Bad request",
        errors={"field": ["missing"]},
        status_code=418,
    )
    assert resp.status_code == 418
    assert resp.data["status"] == 1
    assert resp.data["message"] == "Bad request"
    assert resp.data["data"] is None
    assert resp.data["errors"] == {"field": ["missing"]}


def test_error_response_can_carry_data() -> None:
    resp = error_response("degraded", data={"status": "degraded"})
    assert resp.data["data"] == {"status": "degraded"}


def test_success_response_payload() -> None:
    resp = success_response({"ok": True}, message="done", status_code=201)
    assert resp.status_code == 201
    assert resp.data == {
        "status": 0,
        "message": "done",
        "data": {"ok": True},
        "errors": None,
    }


def test_custom_exception_handler_returns_500_on_unhandled() -> None:
    with patch("rest_framework.views.exception_handler", return_value=None):
        resp = custom_exception_handler(Exception("boom"), {})
    assert resp.status_code == 500
    assert resp.data["status"] == 1
    assert resp.data["message"] == "Internal server error"
    assert resp.data["data"] is None


def test_aggregation_failed_maps_to_bad_gateway() -> None:
    exc = AggregationFailed(
        "All weather providers failed for every point",
        failures=[
            ProviderFailure(
                provider_id="openweathermap",
                kind="timeout",
                message="openweathermap fetch timed out after 10ms",
            )
        ],
    )

    resp = custom_exception_handler(exc, {})

    assert resp.status_code == 502
    assert resp.data["message"] == (
        "All weather providers failed for every point"
    )
    assert resp.data["errors"] == [
        {
            "provider_id": "openweathermap",
            "kind": "timeout",
            "message": "openweathermap fetch timed out after 10ms",
            "status_code": None,
        }
    ]


def test_validation_errors_keep_field_detail() -> None:
    exc = ValidationError({"points": ["This list may not be empty."]})
    with patch(
        "rest_framework.views.exception_handler",
        return_value=Response(exc.detail, status=400),
    ):
        resp = custom_exception_handler(exc, {})
    assert resp.status_code == 400
    assert resp.data["message"] == "Invalid request"
    assert resp.data["errors"] == {"points": ["This list may not be empty."]}


def test_detail_string_becomes_message() -> None:
    resp = custom_exception_handler(NotFound("No such route"), {})
    assert resp.status_code == 404
    assert resp.data["message"] == "No such route"


def test_to_json_value_handles_sequences() -> None:
    payload = ("ok", {"value": Decimal("1.25")})
    assert _to_json_value(payload) == ["ok", {"value": "1.25"}]


def test_home_view_returns_metadata() -> None:
    client = Client()
    resp = client.get("/")
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["service"] == "routecast"
    assert body["docs"] == "/api/docs/"
    assert body["health"] == "/api/v1/health/"
    assert body["aggregate"] == "/api/v1/forecasts/aggregate/"
    assert body["version"] == "1.0.0"


def test_openapi_schema_documents_forecast_routes() -> None:
    client = Client()
    resp = client.get("/api/schema/", {"format": "json"})
    assert resp.status_code == 200
    paths = resp.json()["paths"]
    assert "/api/v1/forecasts/aggregate/" in paths
    assert "/api/v1/health/" in paths
