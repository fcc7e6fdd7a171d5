"""
Permission Service - RBAC resolver and permission catalog

Handles:
- Effective permission resolution (union across all assigned roles)
- Single / any / all permission checks with missing-permission reporting
- Per-role permission breakdown for display
- Catalog reads and seeding of system permissions

Every check is a live query against the store. Nothing is cached, so a role
revocation is visible to the very next check.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Set

from django.db import transaction

from apps.core.exceptions import PermissionDeniedError
from apps.core.models import Permission, Role, RolePermission
from apps.core.validation import parse_uuid

logger = logging.getLogger(__name__)


# module -> description, seeded with every CRUD_ACTIONS action
SYSTEM_MODULES = {
    'user': 'usuarios',
    'role': 'roles',
    'permission': 'permisos',
}
CRUD_ACTIONS = {
    'create': 'Crear',
    'read': 'Ver',
    'update': 'Actualizar',
    'delete': 'Eliminar',
    'list': 'Listar',
    'manage': 'Gestionar',
}
EXTRA_SYSTEM_PERMISSIONS = [
    ('system:admin', 'system', 'Administración completa del sistema'),
    ('system:config', 'system', 'Configuración del sistema'),
    ('audit:view', 'audit', 'Ver registros de auditoría'),
]


@dataclass(frozen=True)
class PermissionCheckResult:
    """Outcome of an all-of check. ``missing`` holds exactly the unsatisfied ids."""

    ok: bool
    missing: FrozenSet[str] = field(default_factory=frozenset)

    def __bool__(self):
        return self.ok


class PermissionService:
    """
    Read-only view of RBAC state.

    Aggregation is an additive set union: a permission granted by any one
    role is granted. There are no deny rules and no precedence between roles.
    Unknown users simply have no permissions.
    """

    # ==================== RESOLUTION ====================

    def _user_permissions_qs(self, user_id):
        return Permission.objects.filter(
            role_permissions__role__user_roles__user_id=user_id
        )

    def get_user_permissions(self, user_id: Any) -> Set[str]:
        """
        Get all effective permissions for a user.

        Args:
            user_id: User identifier

        Returns:
            Set of permission identifiers, deduplicated across roles
        """
        user_id = parse_uuid(user_id, 'user_id')
        return set(
            self._user_permissions_qs(user_id)
            .values_list('id', flat=True)
            .distinct()
        )

    def has_permission(self, user_id: Any, permission_id: str) -> bool:
        """Existence check; does not materialize the full permission set."""
        user_id = parse_uuid(user_id, 'user_id')
        return RolePermission.objects.filter(
            permission_id=permission_id,
            role__user_roles__user_id=user_id
        ).exists()

    def has_any_permission(self, user_id: Any, permission_ids: Iterable[str]) -> bool:
        """
        Check if user holds at least one of ``permission_ids``.

        An empty list is never satisfied.
        """
        user_id = parse_uuid(user_id, 'user_id')
        permission_ids = list(permission_ids)
        if not permission_ids:
            return False

        return RolePermission.objects.filter(
            permission_id__in=permission_ids,
            role__user_roles__user_id=user_id
        ).exists()

    def has_all_permissions(self, user_id: Any, permission_ids: Iterable[str]) -> PermissionCheckResult:
        """
        Check if user holds every one of ``permission_ids``.

        An empty list is vacuously satisfied.

        Returns:
            PermissionCheckResult with ``missing`` = requested minus effective
        """
        user_id = parse_uuid(user_id, 'user_id')
        required = set(permission_ids)
        if not required:
            return PermissionCheckResult(ok=True)

        granted = set(
            self._user_permissions_qs(user_id)
            .filter(id__in=required)
            .values_list('id', flat=True)
            .distinct()
        )
        missing = frozenset(required - granted)
        return PermissionCheckResult(ok=not missing, missing=missing)

    def check_permission(self, user_id: Any, permission_id: str) -> None:
        """
        Check permission and raise exception if denied.

        Raises:
            PermissionDeniedError: If user lacks permission
        """
        if not self.has_permission(user_id, permission_id):
            raise PermissionDeniedError(
                f"Permission '{permission_id}' required",
                missing=[permission_id]
            )

    def check_all_permissions(self, user_id: Any, permission_ids: Iterable[str]) -> None:
        """
        Raises:
            PermissionDeniedError: Carrying the missing permission ids
        """
        result = self.has_all_permissions(user_id, permission_ids)
        if not result.ok:
            raise PermissionDeniedError(
                f"Missing permissions: {', '.join(sorted(result.missing))}",
                missing=result.missing
            )

    def get_user_roles_with_permissions(self, user_id: Any) -> List[Dict[str, Any]]:
        """
        Per-role breakdown of a user's permissions, for display.

        Returns:
            List of dicts with role_id, name, description, permissions
        """
        user_id = parse_uuid(user_id, 'user_id')
        roles = Role.objects.filter(user_roles__user_id=user_id).prefetch_related(
            'role_permissions'
        ).order_by('name')

        return [
            {
                'role_id': role.id,
                'name': role.name,
                'description': role.description,
                'permissions': {rp.permission_id for rp in role.role_permissions.all()},
            }
            for role in roles
        ]

    # ==================== CATALOG ====================

    def get_all_permissions(self) -> List[Permission]:
        return list(Permission.objects.order_by('module', 'id'))

    def get_permissions_by_module(self, module: str) -> List[Permission]:
        return list(Permission.objects.filter(module=module).order_by('id'))

    def permission_exists(self, permission_id: str) -> bool:
        return Permission.objects.filter(id=permission_id).exists()

    def group_by_module(self) -> Dict[str, List[Permission]]:
        """Catalog grouped by module, modules and permissions sorted."""
        grouped: Dict[str, List[Permission]] = {}
        for permission in self.get_all_permissions():
            grouped.setdefault(permission.module, []).append(permission)
        return grouped

    # ==================== SEEDING ====================

    @transaction.atomic
    def seed_system_permissions(self) -> List[Permission]:
        """
        Create the system permission catalog. Safe to run repeatedly.

        Returns:
            List of newly created permissions
        """
        definitions = [
            (f"{module}:{action}", module, f"{verb} {label}")
            for module, label in SYSTEM_MODULES.items()
            for action, verb in CRUD_ACTIONS.items()
        ] + EXTRA_SYSTEM_PERMISSIONS

        created = []
        for permission_id, module, description in definitions:
            permission, was_created = Permission.objects.get_or_create(
                id=permission_id,
                defaults={'module': module, 'description': description}
            )
            if was_created:
                created.append(permission)

        logger.info(f"Seeded {len(created)} system permissions")
        return created
