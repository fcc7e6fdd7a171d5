"""
Audit Log Serializers
"""

from rest_framework import serializers

from apps.core.models import AuditLog


class AuditLogSerializer(serializers.ModelSerializer):
    """
    Read model for audit entries.
    """

    class Meta:
        model = AuditLog
        fields = [
            'id',
            'timestamp',
            'user_id',
            'action',
            'module',
            'area',
            'entity_type',
            'entity_id',
            'old_values',
            'new_values',
            'ip_address',
            'user_agent',
            'request_id',
            'metadata',
        ]
        read_only_fields = fields


class AuditPaginationSerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    offset = serializers.IntegerField(min_value=0, required=False, allow_null=True)
