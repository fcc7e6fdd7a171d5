"""
Menu Serializers
"""

from rest_framework import serializers


class MenuItemWriteSerializer(serializers.Serializer):
    """
    Serializer for creating and updating menu items.
    """

    title = serializers.CharField(max_length=100)
    href = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    icon = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    permission_id = serializers.CharField(max_length=100, required=False, allow_null=True)
    parent_id = serializers.UUIDField(required=False, allow_null=True)
    order = serializers.IntegerField(required=False, default=0)
    is_active = serializers.BooleanField(required=False, default=True)

    def validate_href(self, value):
        return value or None


class MenuReorderSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    order = serializers.IntegerField()
