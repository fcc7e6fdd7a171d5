"""
Admin Service Celery Tasks

Background maintenance for sessions, reset tokens and the event outbox.
"""

from .maintenance_tasks import (
    sweep_expired_sessions,
    sweep_expired_reset_tokens,
    process_event_outbox,
)


__all__ = [
    'sweep_expired_sessions',
    'sweep_expired_reset_tokens',
    'process_event_outbox',
]
