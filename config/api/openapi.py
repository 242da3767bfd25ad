"""drf-spectacular helpers for documenting the response envelope.

`config.api.responses` and the global exception handler wrap every API
response in `{status, message, data, errors}`. These builders produce
matching serializers for the OpenAPI schema only.
"""

from __future__ import annotations

from drf_spectacular.utils import inline_serializer
from rest_framework import serializers
from rest_framework.serializers import Serializer


def success_envelope_serializer(
    name: str,
    *,
    data: serializers.Field,
) -> Serializer:
    """Schema for `success_response`."""

    return inline_serializer(
        name=name,
        fields={
            "status": serializers.IntegerField(),
            "message": serializers.CharField(),
            "data": data,
            "errors": serializers.JSONField(allow_null=True),
        },
    )


def error_envelope_serializer(
    name: str,
    *,
    data: serializers.Field | None = None,
) -> Serializer:
    """Schema for `error_response` and `custom_exception_handler`.

    `errors` holds field errors for 400s and provider failures for 502s.
    """

    return inline_serializer(
        name=name,
        fields={
            "status": serializers.IntegerField(),
            "message": serializers.CharField(),
            "data": data or serializers.JSONField(allow_null=True),
            "errors": serializers.JSONField(allow_null=True),
        },
    )
