"""
Tests for SessionService
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from apps.core.models import Session


pytestmark = pytest.mark.django_db


def _age(session, seconds):
    """Backdate a session's creation time."""
    Session.objects.filter(pk=session.pk).update(created_at=timezone.now() - timedelta(seconds=seconds))


class TestSessionValidity:
    """Tests for the validity predicate."""

    def test_active_session_is_valid(self, session_service, active_user):
        session_service.create('tok-1', active_user.id, timezone.now() + timedelta(hours=1))

        assert session_service.is_valid('tok-1')

    def test_expired_session_is_invalid(self, session_service, active_user, create_session):
        create_session(active_user, expires_in=timedelta(seconds=-1), token='old')

        assert not session_service.is_valid('old')
        # Still present until swept
        assert session_service.get('old') is not None

    def test_unknown_and_empty_tokens(self, session_service):
        assert not session_service.is_valid('missing')
        assert not session_service.is_valid('')
        assert not session_service.is_valid(None)

    def test_deleted_session_is_invalid(self, session_service, active_user, create_session):
        create_session(active_user, token='tok-1')

        assert session_service.delete('tok-1') is True
        assert not session_service.is_valid('tok-1')
        assert session_service.delete('tok-1') is False


class TestUserSessions:
    """Tests for per-user session operations."""

    def test_list_for_user_newest_first(self, session_service, active_user, create_session):
        older = create_session(active_user, token='older')
        newer = create_session(active_user, token='newer')
        create_session(active_user, expires_in=timedelta(seconds=-1), token='expired')
        _age(older, 60)

        sessions = session_service.list_for_user(active_user.id)

        assert [s.session_token for s in sessions] == ['newer', 'older']
        assert len(session_service.list_for_user(active_user.id, include_expired=True)) == 3
        assert newer in sessions

    def test_delete_all_for_user(self, session_service, active_user, admin_user, create_session):
        create_session(active_user)
        create_session(active_user)
        create_session(admin_user, token='other-user')

        assert session_service.delete_all_for_user(active_user.id) == 2
        assert session_service.count_active(active_user.id) == 0
        assert session_service.is_valid('other-user')

    def test_delete_others_keeps_current(self, session_service, active_user, create_session):
        create_session(active_user, token='current')
        create_session(active_user)
        create_session(active_user)

        assert session_service.delete_others_for_user(active_user.id, keep_token='current') == 2
        assert [s.session_token for s in session_service.list_for_user(active_user.id)] == ['current']

    def test_enforce_session_limit_drops_oldest(self, session_service, active_user, create_session):
        sessions = [create_session(active_user, token=f"s{i}") for i in range(4)]
        for i, session in enumerate(sessions):
            _age(session, 100 - i)

        assert session_service.enforce_session_limit(active_user.id, 2) == 2

        remaining = {s.session_token for s in session_service.list_for_user(active_user.id)}
        assert remaining == {'s2', 's3'}

    def test_enforce_session_limit_under_limit(self, session_service, active_user, create_session):
        create_session(active_user)

        assert session_service.enforce_session_limit(active_user.id, 5) == 0


class TestSessionSweep:
    """Tests for the expiry sweep."""

    def test_sweep_only_deletes_expired(self, session_service, active_user, create_session):
        create_session(active_user, expires_in=timedelta(seconds=-10), token='expired-1')
        create_session(active_user, expires_in=timedelta(days=-2), token='expired-2')
        create_session(active_user, token='live')

        assert session_service.sweep_expired() == 2
        assert list(Session.objects.values_list('session_token', flat=True)) == ['live']
        assert session_service.sweep_expired() == 0

    def test_sweep_with_nothing_expired(self, session_service, active_user, create_session):
        create_session(active_user)

        assert session_service.sweep_expired() == 0
