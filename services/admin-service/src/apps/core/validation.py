"""
Input validation helpers shared by the services.

Malformed input is rejected with ``ValidationError`` before any store access.
"""

import uuid
from typing import Any, Dict, Type

from rest_framework import serializers

from apps.core.exceptions import ValidationError


def validate_input(serializer_class: Type[serializers.Serializer], data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Run ``serializer_class`` over ``data`` and return the validated data."""
    serializer = serializer_class(data=data, partial=partial)
    if not serializer.is_valid():
        raise ValidationError(serializer.errors)
    return serializer.validated_data


def parse_uuid(value: Any, field_name: str = 'id') -> uuid.UUID:
    """Coerce ``value`` to a UUID or raise ValidationError naming ``field_name``."""
    try:
        return serializers.UUIDField().to_internal_value(value)
    except serializers.ValidationError as e:
        raise ValidationError({field_name: e.detail})
