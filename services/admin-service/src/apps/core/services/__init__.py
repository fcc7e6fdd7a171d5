"""
Admin Service - Business Logic Layer

This module exports all service classes for the Admin Service including:
- PermissionService: RBAC resolution and permission catalog
- RoleService: Role registry and role assignment
- SessionService: Server-side session registry
- AuditService: Audit trail writing and querying
- MenuService: Permission-filtered navigation menu
- AuthService: Login, logout and password flows
- UserService: User administration
- RateLimiter: Per-client sliding window request limits
"""

from .permission_service import (
    PermissionService,
    PermissionCheckResult,
)

from .role_service import RoleService

from .session_service import SessionService

from .audit_service import (
    AuditService,
    AuditContext,
    AuditOptions,
    AuditQueryResult,
    get_audit_context,
)

from .menu_service import (
    MenuService,
    MenuEntry,
    MenuNode,
    filter_menu,
)

from .email_service import EmailService

from .auth_service import AuthService

from .user_service import UserService

from .rate_limiter import RateLimiter, RateLimitResult

__all__ = [
    # Permission Service
    'PermissionService',
    'PermissionCheckResult',

    # Role Service
    'RoleService',

    # Session Service
    'SessionService',

    # Audit Service
    'AuditService',
    'AuditContext',
    'AuditOptions',
    'AuditQueryResult',
    'get_audit_context',

    # Menu Service
    'MenuService',
    'MenuEntry',
    'MenuNode',
    'filter_menu',

    # Email Service
    'EmailService',

    # Auth Service
    'AuthService',

    # User Service
    'UserService',

    # Rate Limiter
    'RateLimiter',
    'RateLimitResult',
]
