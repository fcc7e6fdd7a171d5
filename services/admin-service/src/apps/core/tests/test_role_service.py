"""
Tests for RoleService

Tests the role registry including:
- Role CRUD and permission sets
- Role assignment and revocation with their audit entries
- Duplicate assignment handling
- Default role seeding
"""

import uuid
from unittest.mock import patch

import pytest
from django.db import IntegrityError

from apps.core.events import EventPublisher, EventType
from apps.core.exceptions import ConflictError, NotFoundError, ValidationError
from apps.core.models import AuditLog, Role, RolePermission, UserRole


pytestmark = pytest.mark.django_db


class TestRoleManagement:
    """Tests for role CRUD."""

    def test_create_role(self, role_service, basic_permissions, admin_user):
        role = role_service.create_role(
            'editor',
            description='Edits users',
            permission_ids=['user:read', 'user:update'],
            created_by=admin_user.id
        )

        assert role.name == 'editor'
        assert role.get_permission_ids() == {'user:read', 'user:update'}

        entry = AuditLog.objects.get(action='role_created')
        assert entry.entity_type == 'Role'
        assert entry.entity_id == str(role.id)
        assert entry.user_id == admin_user.id
        assert entry.new_values['permissions'] == ['user:read', 'user:update']

    def test_create_role_duplicate_name(self, role_service, admin_role):
        with pytest.raises(ConflictError):
            role_service.create_role('admin')

    def test_create_role_unknown_permission(self, role_service, basic_permissions):
        with pytest.raises(ValidationError) as exc_info:
            role_service.create_role('editor', permission_ids=['user:read', 'user:fly'])

        assert 'permission_ids' in exc_info.value.errors
        assert not Role.objects.filter(name='editor').exists()

    def test_update_role_records_changes(self, role_service, admin_role):
        role_service.update_role(admin_role.id, description='Full access')

        admin_role.refresh_from_db()
        assert admin_role.description == 'Full access'

        entry = AuditLog.objects.get(action='role_updated')
        assert entry.old_values == {'description': None}
        assert entry.new_values == {'description': 'Full access'}

    def test_update_role_name_conflict(self, role_service, admin_role, viewer_role):
        with pytest.raises(ConflictError):
            role_service.update_role(viewer_role.id, name='admin')

    def test_update_unknown_role(self, role_service):
        with pytest.raises(NotFoundError):
            role_service.update_role(uuid.uuid4(), name='ghost')

    def test_delete_role_cascades_assignments(self, role_service, admin_role, active_user, grant_role):
        grant_role(active_user, admin_role)

        role_service.delete_role(admin_role.id)

        assert not Role.objects.filter(id=admin_role.id).exists()
        assert not UserRole.objects.filter(user=active_user).exists()
        assert not RolePermission.objects.filter(role_id=admin_role.id).exists()

        entry = AuditLog.objects.get(action='role_deleted')
        assert entry.old_values['name'] == 'admin'
        assert entry.old_values['assigned_users'] == 1

    def test_list_roles_with_counts(self, role_service, admin_role, viewer_role, active_user, grant_role):
        grant_role(active_user, viewer_role)

        roles = role_service.list_roles()

        assert [r['name'] for r in roles] == ['admin', 'viewer']
        assert roles[0]['permission_count'] == 2
        assert roles[0]['user_count'] == 0
        assert roles[1]['user_count'] == 1


class TestRolePermissions:
    """Tests for a role's permission set."""

    def test_assign_permission_is_idempotent(self, role_service, admin_role, basic_permissions):
        assert role_service.assign_permission(admin_role.id, 'user:delete') is True
        assert role_service.assign_permission(admin_role.id, 'user:delete') is False

    def test_assign_unknown_permission(self, role_service, admin_role):
        with pytest.raises(NotFoundError):
            role_service.assign_permission(admin_role.id, 'user:fly')

    def test_remove_permission(self, role_service, admin_role):
        assert role_service.remove_permission(admin_role.id, 'user:create') is True
        assert role_service.remove_permission(admin_role.id, 'user:create') is False

    def test_set_role_permissions_replaces_set(self, role_service, admin_role, basic_permissions):
        role_service.set_role_permissions(admin_role.id, ['user:read', 'user:list'])

        assert admin_role.get_permission_ids() == {'user:read', 'user:list'}

        entry = AuditLog.objects.get(action='role_permissions_updated')
        assert entry.old_values == {'permissions': ['user:create', 'user:read']}
        assert entry.new_values == {'permissions': ['user:list', 'user:read']}


class TestRoleAssignment:
    """Tests for assigning roles to users."""

    def test_assign_role(self, role_service, permission_service, active_user, admin_role, admin_user):
        user_role = role_service.assign_role(active_user.id, admin_role.id, assigned_by=admin_user.id)

        assert user_role.created_by == admin_user.id
        assert permission_service.has_permission(active_user.id, 'user:create')

    def test_assign_role_writes_audit_entry(self, role_service, active_user, admin_role, admin_user):
        role_service.assign_role(active_user.id, admin_role.id, assigned_by=admin_user.id)

        entry = AuditLog.objects.get(action='role_assigned')
        assert entry.module == 'rbac'
        assert entry.area == AuditLog.Area.ADMIN
        assert entry.entity_type == 'User'
        assert entry.entity_id == str(active_user.id)
        assert entry.user_id == admin_user.id
        assert entry.new_values == {'role_id': str(admin_role.id), 'role_name': 'admin'}

    def test_assign_role_publishes_event(self, role_service, active_user, admin_role):
        role_service.assign_role(active_user.id, admin_role.id)

        events = EventPublisher.get_memory_events(EventType.USER_ROLE_ASSIGNED)
        assert len(events) == 1
        assert events[0]['event']['user_id'] == str(active_user.id)
        assert events[0]['event']['role_name'] == 'admin'

    def test_assign_role_twice_conflicts(self, role_service, active_user, admin_role):
        role_service.assign_role(active_user.id, admin_role.id)

        with pytest.raises(ConflictError):
            role_service.assign_role(active_user.id, admin_role.id)

        assert UserRole.objects.filter(user=active_user, role=admin_role).count() == 1

    def test_concurrent_insert_maps_to_conflict(self, role_service, active_user, admin_role):
        """Test a unique constraint violation from a racing insert is a Conflict."""
        with patch('apps.core.services.role_service.UserRole.objects.create', side_effect=IntegrityError):
            with pytest.raises(ConflictError):
                role_service.assign_role(active_user.id, admin_role.id)

        assert not AuditLog.objects.filter(action='role_assigned').exists()

    def test_assign_role_unknown_user(self, role_service, admin_role):
        with pytest.raises(NotFoundError) as exc_info:
            role_service.assign_role(uuid.uuid4(), admin_role.id)

        assert exc_info.value.entity_type == 'User'

    def test_assign_role_unknown_role(self, role_service, active_user):
        with pytest.raises(NotFoundError) as exc_info:
            role_service.assign_role(active_user.id, uuid.uuid4())

        assert exc_info.value.entity_type == 'Role'

    def test_user_checked_before_role(self, role_service):
        """Test a missing user is reported even when the role is missing too."""
        with pytest.raises(NotFoundError) as exc_info:
            role_service.assign_role(uuid.uuid4(), uuid.uuid4())

        assert exc_info.value.entity_type == 'User'

    def test_assign_role_malformed_id(self, role_service, admin_role):
        with pytest.raises(ValidationError):
            role_service.assign_role('nope', admin_role.id)


class TestRoleRevocation:
    """Tests for revoking roles."""

    def test_revoke_role_is_immediate(self, role_service, permission_service, active_user, admin_role, grant_role):
        grant_role(active_user, admin_role)
        assert permission_service.has_permission(active_user.id, 'user:create')

        role_service.revoke_role(active_user.id, admin_role.id)

        assert not permission_service.has_permission(active_user.id, 'user:create')

    def test_revoke_role_writes_audit_entry(self, role_service, active_user, admin_role, admin_user, grant_role):
        grant_role(active_user, admin_role)

        role_service.revoke_role(active_user.id, admin_role.id, revoked_by=admin_user.id)

        entry = AuditLog.objects.get(action='role_removed')
        assert entry.entity_type == 'User'
        assert entry.entity_id == str(active_user.id)
        assert entry.user_id == admin_user.id
        assert entry.old_values['role_name'] == 'admin'
        assert entry.old_values['role_id'] == str(admin_role.id)

    def test_revoke_missing_assignment(self, role_service, active_user, admin_role):
        with pytest.raises(NotFoundError):
            role_service.revoke_role(active_user.id, admin_role.id)

        assert not AuditLog.objects.filter(action='role_removed').exists()

    def test_revoke_role_publishes_event(self, role_service, active_user, admin_role, grant_role):
        grant_role(active_user, admin_role)

        role_service.revoke_role(active_user.id, admin_role.id)

        assert len(EventPublisher.get_memory_events(EventType.USER_ROLE_REVOKED)) == 1

    def test_user_and_role_listings(self, role_service, active_user, admin_user, admin_role, viewer_role, grant_role):
        grant_role(active_user, viewer_role)
        grant_role(active_user, admin_role)
        grant_role(admin_user, admin_role)

        assert [ur.role.name for ur in role_service.get_user_roles(active_user.id)] == ['admin', 'viewer']
        assert [u.email for u in role_service.get_role_users(admin_role.id)] == ['active@test.com', 'admin@test.com']


class TestDefaultRoles:
    """Tests for default role seeding."""

    def test_seed_default_roles(self, role_service, permission_service):
        permission_service.seed_system_permissions()

        created = role_service.seed_default_roles()

        assert {role.name for role in created} == {'admin', 'viewer'}
        admin = Role.objects.get(name='admin')
        viewer = Role.objects.get(name='viewer')
        assert 'system:admin' in admin.get_permission_ids()
        assert viewer.get_permission_ids() == {
            f"{module}:{action}" for module in ('user', 'role', 'permission') for action in ('read', 'list')
        }

    def test_seed_default_roles_idempotent(self, role_service, permission_service):
        permission_service.seed_system_permissions()
        role_service.seed_default_roles()

        assert role_service.seed_default_roles() == []
