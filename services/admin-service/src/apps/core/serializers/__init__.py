"""
Admin Service Serializers

Input validation for service operations and read models for results.
"""

from .auth import (
    RegisterSerializer,
    LoginSerializer,
    PasswordChangeSerializer,
    PasswordResetRequestSerializer,
    PasswordResetConfirmSerializer,
    password_policy_violations,
)
from .rbac import (
    PermissionSerializer,
    RoleSerializer,
    RoleWriteSerializer,
    RoleAssignmentSerializer,
    UserRoleSerializer,
)
from .audit import AuditLogSerializer, AuditPaginationSerializer
from .user import UserSerializer, UserCreateSerializer, UserUpdateSerializer, SessionSerializer
from .menu import MenuItemWriteSerializer, MenuReorderSerializer

__all__ = [
    # Auth
    'RegisterSerializer',
    'LoginSerializer',
    'PasswordChangeSerializer',
    'PasswordResetRequestSerializer',
    'PasswordResetConfirmSerializer',
    'password_policy_violations',

    # RBAC
    'PermissionSerializer',
    'RoleSerializer',
    'RoleWriteSerializer',
    'RoleAssignmentSerializer',
    'UserRoleSerializer',

    # Audit
    'AuditLogSerializer',
    'AuditPaginationSerializer',

    # Users
    'UserSerializer',
    'UserCreateSerializer',
    'UserUpdateSerializer',
    'SessionSerializer',

    # Menu
    'MenuItemWriteSerializer',
    'MenuReorderSerializer',
]
