"""
Pytest Configuration and Fixtures

Provides common fixtures for all Admin Service tests.
"""

import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from django.core.cache import caches
from django.utils import timezone

from apps.core.context import reset_current_request, set_current_request
from apps.core.events import EventPublisher
from apps.core.models import (
    AuditLog, Permission, Role, RolePermission, Session, User, UserCredentials, UserRole
)
from apps.core.services import (
    AuditService,
    AuthService,
    MenuService,
    PermissionService,
    RoleService,
    SessionService,
    UserService,
)


# ==================== ISOLATION FIXTURES ====================

@pytest.fixture(autouse=True)
def clear_event_store():
    """Start every test with an empty in-memory event store."""
    EventPublisher.clear_memory_events()
    yield
    EventPublisher.clear_memory_events()


@pytest.fixture(autouse=True)
def clear_rate_limit_cache():
    caches['rate_limit'].clear()
    yield
    caches['rate_limit'].clear()


@pytest.fixture
def ambient_request(rf):
    """Publish a request as the ambient context, like RequestContextMiddleware does."""
    request = rf.get(
        '/api/admin/roles',
        HTTP_X_FORWARDED_FOR='203.0.113.7, 10.0.0.1',
        HTTP_USER_AGENT='pytest-browser/1.0',
    )
    request.request_id = 'req-test-123'
    token = set_current_request(request)
    yield request
    reset_current_request(token)


# ==================== USER FIXTURES ====================

@pytest.fixture
def user_password() -> str:
    """Standard password for test users."""
    return 'TestPassword123!'


@pytest.fixture
def create_user(db, user_password):
    """Factory fixture to create test users with password credentials."""
    def _create_user(
        email: str = None,
        password: str = None,
        with_credentials: bool = True,
        **kwargs
    ) -> User:
        if email is None:
            email = f"user_{uuid.uuid4().hex[:8]}@test.com"

        user = User.objects.create(
            email=email,
            name=kwargs.get('name', 'Test User'),
            first_name=kwargs.get('first_name', 'Test'),
            last_name=kwargs.get('last_name', 'User'),
        )
        if with_credentials:
            credentials = UserCredentials(user=user)
            credentials.set_password(password or user_password)
            credentials.save()
        return user

    return _create_user


@pytest.fixture
def active_user(create_user) -> User:
    return create_user(email='active@test.com', name='Active User')


@pytest.fixture
def admin_user(create_user) -> User:
    return create_user(email='admin@test.com', name='Admin User')


@pytest.fixture
def oauth_user(create_user) -> User:
    """User authenticated by an external provider, without credentials."""
    return create_user(email='oauth@test.com', with_credentials=False)


# ==================== RBAC FIXTURES ====================

@pytest.fixture
def create_permission(db):
    """Factory fixture to create catalog permissions."""
    def _create_permission(permission_id: str, description: str = None) -> Permission:
        permission, _ = Permission.objects.get_or_create(
            id=permission_id,
            defaults={
                'module': permission_id.split(':')[0],
                'description': description or permission_id,
            }
        )
        return permission

    return _create_permission


@pytest.fixture
def create_role(db, create_permission):
    """Factory fixture to create a role holding ``permissions``."""
    def _create_role(name: str = None, permissions=(), description: str = None) -> Role:
        role = Role.objects.create(
            name=name or f"role_{uuid.uuid4().hex[:8]}",
            description=description
        )
        for permission_id in permissions:
            RolePermission.objects.create(role=role, permission=create_permission(permission_id))
        return role

    return _create_role


@pytest.fixture
def grant_role(db):
    """Assign a role directly, bypassing the service."""
    def _grant_role(user: User, role: Role) -> UserRole:
        return UserRole.objects.create(user=user, role=role)

    return _grant_role


@pytest.fixture
def basic_permissions(create_permission):
    """Create basic user management permissions."""
    return [
        create_permission(permission_id)
        for permission_id in ('user:create', 'user:read', 'user:update', 'user:delete', 'user:list')
    ]


@pytest.fixture
def admin_role(create_role) -> Role:
    return create_role('admin', permissions=['user:create', 'user:read'])


@pytest.fixture
def viewer_role(create_role) -> Role:
    return create_role('viewer', permissions=['user:read', 'user:list'])


# ==================== SESSION FIXTURES ====================

@pytest.fixture
def create_session(db):
    """Factory fixture to create sessions relative to now."""
    def _create_session(user: User, expires_in: timedelta = timedelta(days=1), token: str = None) -> Session:
        return Session.objects.create(
            session_token=token or uuid.uuid4().hex,
            user=user,
            expires=timezone.now() + expires_in,
        )

    return _create_session


# ==================== AUDIT FIXTURES ====================

@pytest.fixture
def create_audit_entries(db):
    """
    Factory fixture writing ``count`` entries one second apart, oldest first,
    so ordering assertions do not depend on clock resolution.
    """
    def _create_audit_entries(count: int, start=None, **fields):
        start = start or timezone.now() - timedelta(hours=1)
        entries = []
        for i in range(count):
            entry = AuditLog.objects.create(
                action=fields.get('action', 'update'),
                module=fields.get('module', 'users'),
                user_id=fields.get('user_id'),
                area=fields.get('area'),
                entity_type=fields.get('entity_type', 'User'),
                entity_id=fields.get('entity_id', str(i)),
            )
            AuditLog.objects.filter(id=entry.id).update(timestamp=start + timedelta(seconds=i))
            entry.refresh_from_db()
            entries.append(entry)
        return entries

    return _create_audit_entries


# ==================== SERVICE FIXTURES ====================

@pytest.fixture
def audit_service() -> AuditService:
    return AuditService()


@pytest.fixture
def permission_service() -> PermissionService:
    return PermissionService()


@pytest.fixture
def role_service(audit_service) -> RoleService:
    return RoleService(audit_service=audit_service)


@pytest.fixture
def session_service() -> SessionService:
    return SessionService()


@pytest.fixture
def menu_service(permission_service, audit_service) -> MenuService:
    return MenuService(permission_service=permission_service, audit_service=audit_service)


@pytest.fixture
def email_sender() -> MagicMock:
    """Stand-in for the email collaborator, recording ``send`` calls."""
    return MagicMock()


@pytest.fixture
def auth_service(session_service, email_sender) -> AuthService:
    return AuthService(session_service=session_service, email_sender=email_sender)


@pytest.fixture
def user_service(audit_service) -> UserService:
    return UserService(audit_service=audit_service)
