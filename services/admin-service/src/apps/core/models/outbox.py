"""
Event Outbox Model

Events whose subscriber failed are parked here and re-dispatched by the
outbox Celery task.
"""

import uuid
from django.core.serializers.json import DjangoJSONEncoder
from datetime import timedelta

from django.db import models
from django.db.models import Q
from django.utils import timezone


class EventOutbox(models.Model):
    """
    One undelivered (event, subscriber) pair.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        COMPLETED = 'completed', 'Completed'
        DEAD_LETTER = 'dead_letter', 'Dead Letter'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event_id = models.CharField(max_length=100, db_index=True)
    event_type = models.CharField(max_length=100, db_index=True)
    handler = models.CharField(max_length=255, help_text='Dotted path of the failed subscriber')
    payload = models.JSONField(encoder=DjangoJSONEncoder)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )
    retry_count = models.IntegerField(default=0)
    max_retries = models.IntegerField(default=5)
    last_error = models.TextField(blank=True, null=True)
    next_retry_at = models.DateTimeField(blank=True, null=True)
    processed_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'event_outbox'
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['event_id', 'handler'],
                name='unique_outbox_event_handler'
            )
        ]
        indexes = [
            models.Index(
                fields=['status', 'next_retry_at'],
                name='idx_outbox_retry'
            ),
        ]

    def __str__(self):
        return f"{self.event_type} -> {self.handler} ({self.status})"

    def mark_completed(self):
        self.status = self.Status.COMPLETED
        self.processed_at = timezone.now()
        self.save(update_fields=['status', 'processed_at', 'updated_at'])

    def mark_failed(self, error: str):
        """Record a failed retry and schedule the next one."""
        self.retry_count += 1
        self.last_error = error

        if self.retry_count >= self.max_retries:
            self.status = self.Status.DEAD_LETTER
        else:
            self.status = self.Status.PENDING
            # Exponential backoff: 2min, 4min, 8min, 16min
            self.next_retry_at = timezone.now() + timedelta(minutes=2 ** self.retry_count)

        self.save(update_fields=[
            'status', 'retry_count', 'last_error', 'next_retry_at', 'updated_at'
        ])

    @classmethod
    def get_pending_events(cls, limit: int = 100):
        """Get events ready for retry."""
        return cls.objects.filter(
            status=cls.Status.PENDING
        ).filter(
            Q(next_retry_at__isnull=True) | Q(next_retry_at__lte=timezone.now())
        ).order_by('created_at')[:limit]
