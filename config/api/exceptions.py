from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, is_dataclass
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from rest_framework.response import Response


JSONValue: TypeAlias = (
    None
    | bool
    | int
    | float
    | str
    | list["JSONValue"]
    | dict[str, "JSONValue"]
)


def _to_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, str | int | float | bool):
        return value
    if is_dataclass(value) and not isinstance(value, type):
        return _to_json_value(asdict(value))
    if isinstance(value, Mapping):
        return {str(k): _to_json_value(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_to_json_value(v) for v in value]
    return str(value)


def custom_exception_handler(
    exc: Exception,
    context: dict[str, Any],
) -> Response:
    """Wrap every error in the `{status, message, data, errors}` envelope.

    `AggregationFailed` becomes 502 with the per-provider failures as
    `errors`; anything DRF does not handle becomes a bare 500.
    """

    # Lazy imports: safe even if settings aren't configured at import time.
    import logging

    from rest_framework import status
    from rest_framework.exceptions import ValidationError
    from rest_framework.response import Response
    from rest_framework.views import exception_handler as drf_exception_handler

    from aggregator.engines.errors import AggregationFailed

    if isinstance(exc, AggregationFailed):
        return Response(
            {
                "status": 1,
                "message": str(exc),
                "data": None,
                "errors": _to_json_value(exc.failures),
            },
            status=status.HTTP_502_BAD_GATEWAY,
        )

    response = drf_exception_handler(exc, context)

    if response is None:
        logging.getLogger(__name__).error(
            "api.unhandled_exception err=%s",
            exc.__class__.__name__,
            exc_info=exc,
        )
        return Response(
            {
                "status": 1,
                "message": "Internal server error",
                "data": None,
                "errors": None,
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    detail = _to_json_value(response.data)
    message = "Request failed"
    if isinstance(exc, ValidationError):
        message = "Invalid request"
    elif isinstance(detail, dict):
        maybe = detail.get("detail")
        if isinstance(maybe, str):
            message = maybe

    response.data = {
        "status": 1,
        "message": message,
        "data": None,
        "errors": detail,
    }
    return response
