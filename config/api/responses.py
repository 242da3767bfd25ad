"""Response envelope shared by every API endpoint.

Every body is `{status, message, data, errors}` where `status` is 0 on
success and 1 on failure.
"""

from __future__ import annotations

from typing import TypeAlias

from rest_framework import status
from rest_framework.response import Response

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


def success_response(
    data: JSONValue | None,
    message: str = "OK",
    *,
    status_code: int = status.HTTP_200_OK,
) -> Response:
    payload: dict[str, JSONValue] = {
        "status": 0,
        "message": message,
        "data": data,
        "errors": None,
    }
    return Response(payload, status=status_code)


def error_response(
    message: str,
    *,
    errors: JSONValue | None = None,
    data: JSONValue | None = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> Response:
    """Failure envelope. `data` carries partial results, e.g. health."""

    payload: dict[str, JSONValue] = {
        "status": 1,
        "message": message,
        "data": data,
        "errors": errors,
    }
    return Response(payload, status=status_code)
