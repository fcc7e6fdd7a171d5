"""
Tests for UserService
"""

import uuid

import pytest

from apps.core.exceptions import ConflictError, NotFoundError, ValidationError
from apps.core.models import AuditLog, Session, User, UserCredentials, UserRole


pytestmark = pytest.mark.django_db


class TestUserCreation:
    """Tests for creating users from the admin panel."""

    def test_create_user_with_password(self, user_service, admin_user):
        user = user_service.create_user(
            'Staff@Test.com', name='Staff', password='StaffPass123!', created_by=admin_user.id
        )

        assert user.email == 'staff@test.com'
        assert UserCredentials.objects.get(user=user).check_password('StaffPass123!')

        entry = AuditLog.objects.get(action='create', entity_type='User')
        assert entry.entity_id == str(user.id)
        assert entry.user_id == admin_user.id
        assert entry.new_values == {'email': 'staff@test.com', 'name': 'Staff', 'has_password': True}

    def test_create_user_without_password(self, user_service):
        user = user_service.create_user('sso@test.com')

        assert not user.has_password

    def test_create_duplicate_email(self, user_service, active_user):
        with pytest.raises(ConflictError) as exc_info:
            user_service.create_user('Active@Test.com')

        assert exc_info.value.error_code == 'USER_EXISTS'

    def test_create_invalid_email(self, user_service):
        with pytest.raises(ValidationError):
            user_service.create_user('nope')


class TestUserQueries:
    """Tests for reading users."""

    def test_get_user(self, user_service, active_user):
        assert user_service.get_user(str(active_user.id)) == active_user

    def test_get_unknown_user(self, user_service):
        with pytest.raises(NotFoundError):
            user_service.get_user(uuid.uuid4())

    def test_list_users_search(self, user_service, create_user):
        create_user(email='ana@test.com', name='Ana Lopez')
        create_user(email='bob@test.com', name='Bob', last_name='Lopez')
        create_user(email='carl@test.com', name='Carl', last_name='Smith')

        users, total = user_service.list_users(search='lopez')

        assert total == 2
        assert {u.email for u in users} == {'ana@test.com', 'bob@test.com'}

    def test_list_users_pagination(self, user_service, create_user):
        for _ in range(5):
            create_user()

        users, total = user_service.list_users(limit=2, offset=4)

        assert total == 5
        assert len(users) == 1


class TestUserUpdate:
    """Tests for profile updates."""

    def test_update_records_only_changed_fields(self, user_service, active_user, admin_user):
        user_service.update_user(active_user.id, updated_by=admin_user.id, name='Renamed', first_name='Test')

        active_user.refresh_from_db()
        assert active_user.name == 'Renamed'

        entry = AuditLog.objects.get(action='update', entity_type='User')
        assert entry.old_values == {'name': 'Active User'}
        assert entry.new_values == {'name': 'Renamed'}

    def test_update_without_changes_writes_nothing(self, user_service, active_user):
        user_service.update_user(active_user.id, name='Active User')

        assert not AuditLog.objects.exists()

    def test_update_email_conflict(self, user_service, active_user, admin_user):
        with pytest.raises(ConflictError):
            user_service.update_user(active_user.id, email='admin@test.com')


class TestUserDeletion:
    """Tests for hard deletion."""

    def test_delete_cascades(self, user_service, active_user, admin_role, grant_role, create_session):
        grant_role(active_user, admin_role)
        create_session(active_user)

        user_service.delete_user(active_user.id)

        assert not User.objects.filter(id=active_user.id).exists()
        assert not UserCredentials.objects.filter(user_id=active_user.id).exists()
        assert not Session.objects.filter(user_id=active_user.id).exists()
        assert not UserRole.objects.filter(user_id=active_user.id).exists()

    def test_audit_history_survives_deletion(self, user_service, audit_service, active_user):
        audit_service.log(action='login', module='auth', user_id=active_user.id)

        user_service.delete_user(active_user.id)

        assert AuditLog.objects.filter(user_id=active_user.id, action='login').exists()
        entry = AuditLog.objects.get(action='delete')
        assert entry.old_values == {'email': 'active@test.com'}
        assert entry.metadata == {'permanent': True}
