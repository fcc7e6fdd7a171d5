"""
Query filters for admin listings.
"""

from django_filters import rest_framework as filters

from apps.core.models import AuditLog


class AuditLogFilter(filters.FilterSet):
    """Filter for audit log entries. All filters combine with AND."""

    user_id = filters.UUIDFilter()
    module = filters.CharFilter()
    action = filters.CharFilter()
    area = filters.ChoiceFilter(choices=AuditLog.Area.choices)
    entity_type = filters.CharFilter()
    entity_id = filters.CharFilter()
    request_id = filters.CharFilter()

    # Inclusive timestamp range
    start_date = filters.IsoDateTimeFilter(field_name='timestamp', lookup_expr='gte')
    end_date = filters.IsoDateTimeFilter(field_name='timestamp', lookup_expr='lte')

    class Meta:
        model = AuditLog
        fields = [
            'user_id', 'module', 'action', 'area',
            'entity_type', 'entity_id', 'request_id',
        ]
