"""
Admin Service Models

- Identity (User, UserCredentials, Session)
- RBAC (Permission, Role, RolePermission, UserRole)
- Password recovery (PasswordResetToken)
- Audit logging (AuditLog)
- Navigation (MenuItem)
- Event outbox (EventOutbox)
"""

from .user import User, UserCredentials, Session
from .role import Permission, Role, RolePermission, UserRole
from .token import PasswordResetToken
from .audit import AuditLog
from .menu import MenuItem
from .outbox import EventOutbox

__all__ = [
    # Identity
    'User',
    'UserCredentials',
    'Session',

    # RBAC
    'Permission',
    'Role',
    'RolePermission',
    'UserRole',

    # Tokens
    'PasswordResetToken',

    # Audit
    'AuditLog',

    # Navigation
    'MenuItem',

    # Events
    'EventOutbox',
]
