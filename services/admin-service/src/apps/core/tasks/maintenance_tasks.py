"""
Maintenance Celery Tasks

Periodic cleanup of expired sessions and reset tokens, and redelivery of
events parked in the outbox.
"""

import logging
from celery import shared_task

from ..events import get_publisher
from ..services import AuthService, SessionService


logger = logging.getLogger(__name__)


@shared_task(name='core.sweep_expired_sessions')
def sweep_expired_sessions():
    """
    Delete sessions past their expiry.

    Only rows that already fail the validity check are removed, so the
    task can run at any time alongside normal traffic.

    Returns:
        Dict with the number of deleted sessions
    """
    deleted = SessionService().sweep_expired()
    return {'sessions_deleted': deleted}


@shared_task(name='core.sweep_expired_reset_tokens')
def sweep_expired_reset_tokens():
    """
    Delete password reset tokens past their expiry.

    Returns:
        Dict with the number of deleted tokens
    """
    deleted = AuthService().sweep_expired_reset_tokens()
    return {'tokens_deleted': deleted}


@shared_task(name='core.process_event_outbox')
def process_event_outbox(limit: int = 100):
    """
    Retry event deliveries that failed on first dispatch.

    Args:
        limit: Maximum outbox entries to process in this run

    Returns:
        Dict with processed, completed and failed counts
    """
    results = get_publisher().retry_outbox(limit=limit)

    if results['processed']:
        logger.info(
            f"Outbox run: {results['completed']} delivered, "
            f"{results['failed']} failed of {results['processed']}"
        )

    return results
