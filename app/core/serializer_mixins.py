"""
Serializer fields and mixins shared by the API apps.

Available:
    SequenceIdField: 64-bit sequence ids rendered as strings
    TimestampMixin: Auto-include created_at/updated_at in ModelSerializer output

Sequence ids exceed the 53-bit integer range JavaScript clients can
represent exactly, so they always cross the API boundary as strings.
Input accepts either form.

Usage:
    from core.serializer_mixins import SequenceIdField, TimestampMixin

    class OrderSerializer(TimestampMixin, serializers.ModelSerializer):
        id = SequenceIdField(read_only=True)
        resource_id = SequenceIdField(read_only=True)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

if TYPE_CHECKING:
    from typing import Any


@extend_schema_field(OpenApiTypes.STR)
class SequenceIdField(serializers.Field):
    """Serialize an integer id as a decimal string; accept int or string."""

    default_error_messages = {
        "invalid": "A valid integer id is required.",
    }

    def to_representation(self, value: int) -> str:
        return str(value)

    def to_internal_value(self, data: Any) -> int:
        if isinstance(data, bool):
            self.fail("invalid")
        try:
            value = int(str(data).strip())
        except (TypeError, ValueError):
            self.fail("invalid")
        if value <= 0:
            self.fail("invalid")
        return value


class TimestampMixin:
    """
    Add created_at/updated_at to a ModelSerializer's fields.

    Only applies to models that have the fields (core.models.BaseModel).
    """

    def get_field_names(self, declared_fields: Any, info: Any) -> list[str]:
        fields = list(super().get_field_names(declared_fields, info))  # type: ignore[misc]
        for name in ("created_at", "updated_at"):
            if hasattr(info.model, name) and name not in fields:
                fields.append(name)
        return fields
