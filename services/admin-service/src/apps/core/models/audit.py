"""
Audit log model.

Entries are append-only. ``user_id`` is a weak reference so a user's audit
trail outlives the user record.
"""

import uuid
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class AuditLog(models.Model):
    """
    Immutable record of who did what, when, and from where.
    """

    class Area(models.TextChoices):
        ADMIN = 'admin', 'Admin'
        CUSTOMER = 'customer', 'Customer'
        PUBLIC = 'public', 'Public'
        SYSTEM = 'system', 'System'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    # Actor (null = system originated)
    user_id = models.UUIDField(null=True, blank=True, db_index=True)

    # Action
    action = models.CharField(
        max_length=100,
        db_index=True,
        help_text='Action performed (role_assigned, login, update, ...)'
    )
    module = models.CharField(max_length=50, db_index=True, help_text='Subsystem name')
    area = models.CharField(
        max_length=20,
        choices=Area.choices,
        blank=True,
        null=True
    )

    # Target
    entity_type = models.CharField(max_length=100, blank=True, null=True)
    entity_id = models.CharField(max_length=255, blank=True, null=True)

    # Changes
    old_values = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    new_values = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)

    # Request context
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, null=True)
    request_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)

    metadata = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['user_id', 'timestamp']),
            models.Index(fields=['module', 'action']),
            models.Index(fields=['area']),
            models.Index(fields=['entity_type', 'entity_id']),
        ]

    def __str__(self):
        return f"{self.action} in {self.module} by {self.user_id or 'system'}"
