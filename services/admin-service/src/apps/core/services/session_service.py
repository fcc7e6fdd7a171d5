"""
Session Service - Server-side session registry

A session is valid iff its row exists and ``expires > now``. Validity is
always checked live against the store; deleting the row revokes the
matching access token on its very next use.

State per session: Active -> Expired (row still present) -> Reclaimed
(row deleted by logout, bulk revocation or the expiry sweep). Sessions
have a fixed lifetime and are never renewed.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional

from django.utils import timezone

from apps.core.models import Session
from apps.core.validation import parse_uuid

logger = logging.getLogger(__name__)


class SessionService:
    """Session registry operations."""

    def create(
        self,
        session_token: str,
        user_id: Any,
        expires: datetime,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Session:
        """
        Insert a session. ``session_token`` must be unique; callers derive it
        from a cryptographically random source.
        """
        return Session.objects.create(
            session_token=session_token,
            user_id=parse_uuid(user_id, 'user_id'),
            expires=expires,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def is_valid(self, session_token: str) -> bool:
        """Hot-path check performed on every authenticated request."""
        if not session_token:
            return False
        return Session.objects.filter(
            session_token=session_token,
            expires__gt=timezone.now()
        ).exists()

    def get(self, session_token: str) -> Optional[Session]:
        return Session.objects.filter(session_token=session_token).first()

    def delete(self, session_token: str) -> bool:
        """
        Delete one session.

        Returns:
            True if a row was deleted, False if there was none
        """
        deleted, _ = Session.objects.filter(session_token=session_token).delete()
        return deleted > 0

    def list_for_user(self, user_id: Any, include_expired: bool = False) -> List[Session]:
        """Sessions of a user, newest first."""
        queryset = Session.objects.filter(user_id=parse_uuid(user_id, 'user_id'))
        if not include_expired:
            queryset = queryset.filter(expires__gt=timezone.now())
        return list(queryset.order_by('-created_at', '-id'))

    def delete_others_for_user(self, user_id: Any, keep_token: str) -> int:
        """Revoke every session of a user except ``keep_token``."""
        deleted, _ = Session.objects.filter(
            user_id=parse_uuid(user_id, 'user_id')
        ).exclude(session_token=keep_token).delete()
        logger.info(f"Revoked {deleted} other sessions for user {user_id}")
        return deleted

    def delete_all_for_user(self, user_id: Any) -> int:
        """Revoke every session of a user, forcing re-authentication everywhere."""
        deleted, _ = Session.objects.filter(user_id=parse_uuid(user_id, 'user_id')).delete()
        logger.info(f"Revoked {deleted} sessions for user {user_id}")
        return deleted

    def sweep_expired(self) -> int:
        """
        Delete all sessions with ``expires <= now``.

        Only touches rows that already fail the validity predicate, so it is
        safe to run alongside normal traffic.
        """
        deleted, _ = Session.objects.filter(expires__lte=timezone.now()).delete()
        logger.info(f"Swept {deleted} expired sessions")
        return deleted

    def count_active(self, user_id: Any) -> int:
        return Session.objects.filter(
            user_id=parse_uuid(user_id, 'user_id'),
            expires__gt=timezone.now()
        ).count()

    def enforce_session_limit(self, user_id: Any, max_sessions: int) -> int:
        """
        Delete the oldest active sessions beyond ``max_sessions``.

        Returns:
            Number of sessions deleted
        """
        active_ids = list(
            Session.objects.filter(
                user_id=parse_uuid(user_id, 'user_id'),
                expires__gt=timezone.now()
            ).order_by('-created_at', '-id').values_list('id', flat=True)
        )
        excess = active_ids[max_sessions:]
        if not excess:
            return 0

        deleted, _ = Session.objects.filter(id__in=excess).delete()
        logger.info(f"Session limit reached for user {user_id}; revoked {deleted} oldest sessions")
        return deleted
