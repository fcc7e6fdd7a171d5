"""
Role Service - Role registry and role assignment

Handles:
- Role CRUD and role permission sets
- Assigning roles to users and revoking them
- Default role seeding

Assignment and revocation write their audit entry in the same transaction
as the mutation.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import Count

from apps.core.events import publish_event, RoleAssignedEvent, RoleRevokedEvent
from apps.core.exceptions import ConflictError, NotFoundError, ValidationError
from apps.core.models import AuditLog, Permission, Role, RolePermission, User, UserRole
from apps.core.serializers import RoleAssignmentSerializer, RoleWriteSerializer
from apps.core.validation import parse_uuid, validate_input

from .audit_service import AuditService

logger = logging.getLogger(__name__)

RBAC_MODULE = 'rbac'


class RoleService:
    """
    Role registry.

    Collaborators:
        audit_service: where role changes are recorded
    """

    def __init__(self, audit_service: Optional[AuditService] = None):
        self.audit_service = audit_service or AuditService()

    # ==================== ROLE MANAGEMENT ====================

    @transaction.atomic
    def create_role(
        self,
        name: str,
        description: str = None,
        permission_ids: Iterable[str] = None,
        created_by: Any = None
    ) -> Role:
        """
        Create a new role.

        Args:
            name: Unique role name
            description: Optional description
            permission_ids: Permission identifiers to grant
            created_by: User creating the role

        Returns:
            Created Role object

        Raises:
            ConflictError: If the name is taken
            ValidationError: If a permission id does not exist
        """
        data = validate_input(RoleWriteSerializer, {
            'name': name,
            'description': description,
            'permission_ids': list(permission_ids or []),
        })

        if Role.objects.filter(name__iexact=data['name']).exists():
            raise ConflictError(f"Role '{data['name']}' already exists", error_code='ROLE_EXISTS')

        permission_ids = self._existing_permission_ids(data['permission_ids'])

        role = Role.objects.create(name=data['name'], description=data.get('description'))
        RolePermission.objects.bulk_create([
            RolePermission(role=role, permission_id=permission_id)
            for permission_id in permission_ids
        ])

        self.audit_service.log(
            action='role_created',
            module=RBAC_MODULE,
            area=AuditLog.Area.ADMIN,
            user_id=created_by,
            entity_type='Role',
            entity_id=role.id,
            new_values={
                'name': role.name,
                'description': role.description,
                'permissions': sorted(permission_ids),
            }
        )

        logger.info(f"Role created: {role.name}")
        return role

    @transaction.atomic
    def update_role(
        self,
        role_id: Any,
        name: str = None,
        description: str = None,
        updated_by: Any = None
    ) -> Role:
        """
        Update role name and/or description.

        Raises:
            NotFoundError: If the role does not exist
            ConflictError: If the new name is taken by another role
        """
        role = self._get_role_or_raise(role_id)

        old_values = {}
        new_values = {}

        if name is not None and name != role.name:
            if Role.objects.filter(name__iexact=name).exclude(id=role.id).exists():
                raise ConflictError(f"Role '{name}' already exists", error_code='ROLE_EXISTS')
            old_values['name'], new_values['name'] = role.name, name
            role.name = name

        if description is not None and description != role.description:
            old_values['description'], new_values['description'] = role.description, description
            role.description = description

        if new_values:
            role.save(update_fields=list(new_values) + ['updated_at'])
            self.audit_service.log(
                action='role_updated',
                module=RBAC_MODULE,
                area=AuditLog.Area.ADMIN,
                user_id=updated_by,
                entity_type='Role',
                entity_id=role.id,
                old_values=old_values,
                new_values=new_values
            )

        return role

    @transaction.atomic
    def delete_role(self, role_id: Any, deleted_by: Any = None) -> None:
        """
        Delete a role. Its permission links and user assignments go with it.

        Raises:
            NotFoundError: If the role does not exist
        """
        role = self._get_role_or_raise(role_id)

        old_values = {
            'name': role.name,
            'description': role.description,
            'permissions': sorted(role.get_permission_ids()),
            'assigned_users': UserRole.objects.filter(role=role).count(),
        }
        entity_id = role.id
        role.delete()

        self.audit_service.log(
            action='role_deleted',
            module=RBAC_MODULE,
            area=AuditLog.Area.ADMIN,
            user_id=deleted_by,
            entity_type='Role',
            entity_id=entity_id,
            old_values=old_values
        )

        logger.info(f"Role deleted: {old_values['name']}")

    def get_role(self, role_id: Any) -> Role:
        return self._get_role_or_raise(role_id)

    def list_roles(self) -> List[Dict[str, Any]]:
        """Roles with their permission and user counts, ordered by name."""
        roles = Role.objects.annotate(
            permission_count=Count('role_permissions', distinct=True),
            user_count=Count('user_roles', distinct=True)
        ).order_by('name')

        return [
            {
                'id': role.id,
                'name': role.name,
                'description': role.description,
                'permission_count': role.permission_count,
                'user_count': role.user_count,
            }
            for role in roles
        ]

    # ==================== ROLE PERMISSIONS ====================

    def assign_permission(self, role_id: Any, permission_id: str) -> bool:
        """
        Grant a permission to a role.

        Returns:
            True if the link was created, False if it already existed
        """
        role = self._get_role_or_raise(role_id)
        if not Permission.objects.filter(id=permission_id).exists():
            raise NotFoundError('Permission', permission_id)

        _, created = RolePermission.objects.get_or_create(role=role, permission_id=permission_id)
        return created

    def remove_permission(self, role_id: Any, permission_id: str) -> bool:
        """
        Returns:
            True if a link was deleted
        """
        role = self._get_role_or_raise(role_id)
        deleted, _ = RolePermission.objects.filter(role=role, permission_id=permission_id).delete()
        return deleted > 0

    @transaction.atomic
    def set_role_permissions(
        self,
        role_id: Any,
        permission_ids: Iterable[str],
        updated_by: Any = None
    ) -> Role:
        """
        Replace a role's permission set.

        Raises:
            NotFoundError: If the role does not exist
            ValidationError: If a permission id does not exist
        """
        role = self._get_role_or_raise(role_id)
        new_ids = self._existing_permission_ids(permission_ids)
        old_ids = role.get_permission_ids()

        if new_ids == old_ids:
            return role

        RolePermission.objects.filter(role=role).exclude(permission_id__in=new_ids).delete()
        RolePermission.objects.bulk_create([
            RolePermission(role=role, permission_id=permission_id)
            for permission_id in new_ids - old_ids
        ])

        self.audit_service.log(
            action='role_permissions_updated',
            module=RBAC_MODULE,
            area=AuditLog.Area.ADMIN,
            user_id=updated_by,
            entity_type='Role',
            entity_id=role.id,
            old_values={'permissions': sorted(old_ids)},
            new_values={'permissions': sorted(new_ids)}
        )
        return role

    # ==================== USER ROLE MANAGEMENT ====================

    def assign_role(self, user_id: Any, role_id: Any, assigned_by: Any = None) -> UserRole:
        """
        Assign a role to a user.

        Args:
            user_id: User receiving the role
            role_id: Role to assign
            assigned_by: User making the assignment

        Returns:
            Created UserRole object

        Raises:
            ValidationError: If an id is malformed
            NotFoundError: If the user or the role does not exist
            ConflictError: If the user already has the role
        """
        data = validate_input(RoleAssignmentSerializer, {
            'user_id': user_id, 'role_id': role_id, 'actor_id': assigned_by,
        })

        user = self._get_user_or_raise(data['user_id'])
        role = self._get_role_or_raise(data['role_id'])

        if UserRole.objects.filter(user=user, role=role).exists():
            raise ConflictError(
                f"User already has role '{role.name}'",
                error_code='ROLE_ALREADY_ASSIGNED'
            )

        try:
            with transaction.atomic():
                user_role = UserRole.objects.create(
                    user=user,
                    role=role,
                    created_by=data.get('actor_id')
                )
                self.audit_service.log(
                    action='role_assigned',
                    module=RBAC_MODULE,
                    area=AuditLog.Area.ADMIN,
                    user_id=data.get('actor_id'),
                    entity_type='User',
                    entity_id=user.id,
                    new_values={'role_id': str(role.id), 'role_name': role.name}
                )
        except IntegrityError:
            # A concurrent request inserted the same pair first
            raise ConflictError(
                f"User already has role '{role.name}'",
                error_code='ROLE_ALREADY_ASSIGNED'
            )

        publish_event(RoleAssignedEvent(
            user_id=str(user.id),
            role_id=str(role.id),
            role_name=role.name,
            actor_id=str(data['actor_id']) if data.get('actor_id') else None,
        ))

        logger.info(f"Role '{role.name}' assigned to user: {user.email}")
        return user_role

    def revoke_role(self, user_id: Any, role_id: Any, revoked_by: Any = None) -> None:
        """
        Remove a role from a user. Takes effect on the very next permission check.

        Raises:
            ValidationError: If an id is malformed
            NotFoundError: If the user does not have the role
        """
        data = validate_input(RoleAssignmentSerializer, {
            'user_id': user_id, 'role_id': role_id, 'actor_id': revoked_by,
        })

        with transaction.atomic():
            user_role = UserRole.objects.select_related('role').select_for_update().filter(
                user_id=data['user_id'],
                role_id=data['role_id']
            ).first()

            if user_role is None:
                raise NotFoundError(
                    'UserRole',
                    f"{data['user_id']}:{data['role_id']}",
                    detail="Role assignment not found"
                )

            old_values = {
                'role_id': str(user_role.role_id),
                'role_name': user_role.role.name,
                'assigned_at': user_role.created_at.isoformat(),
                'assigned_by': str(user_role.created_by) if user_role.created_by else None,
            }
            user_role.delete()

            self.audit_service.log(
                action='role_removed',
                module=RBAC_MODULE,
                area=AuditLog.Area.ADMIN,
                user_id=data.get('actor_id'),
                entity_type='User',
                entity_id=data['user_id'],
                old_values=old_values
            )

        publish_event(RoleRevokedEvent(
            user_id=str(data['user_id']),
            role_id=str(data['role_id']),
            role_name=old_values['role_name'],
            actor_id=str(data['actor_id']) if data.get('actor_id') else None,
        ))

        logger.info(f"Role '{old_values['role_name']}' revoked from user: {data['user_id']}")

    def get_user_roles(self, user_id: Any) -> List[UserRole]:
        user_id = parse_uuid(user_id, 'user_id')
        return list(
            UserRole.objects.filter(user_id=user_id).select_related('role').order_by('role__name')
        )

    def get_role_users(self, role_id: Any) -> List[User]:
        role_id = parse_uuid(role_id, 'role_id')
        return list(User.objects.filter(user_roles__role_id=role_id).order_by('email'))

    # ==================== SEEDING ====================

    @transaction.atomic
    def seed_default_roles(self) -> List[Role]:
        """
        Create the default roles from the current permission catalog.

        - admin: every permission
        - viewer: every read and list permission

        Returns:
            List of newly created roles
        """
        all_ids = set(Permission.objects.values_list('id', flat=True))
        defaults = [
            ('admin', 'Acceso completo al panel de administración', all_ids),
            ('viewer', 'Acceso de solo lectura', {
                pid for pid in all_ids if pid.endswith(':read') or pid.endswith(':list')
            }),
        ]

        created = []
        for name, description, permission_ids in defaults:
            role, was_created = Role.objects.get_or_create(
                name=name,
                defaults={'description': description}
            )
            if was_created:
                RolePermission.objects.bulk_create([
                    RolePermission(role=role, permission_id=pid) for pid in sorted(permission_ids)
                ])
                created.append(role)

        logger.info(f"Seeded {len(created)} default roles")
        return created

    # ==================== HELPERS ====================

    def _get_role_or_raise(self, role_id: Any) -> Role:
        role_id = parse_uuid(role_id, 'role_id')
        try:
            return Role.objects.get(id=role_id)
        except Role.DoesNotExist:
            raise NotFoundError('Role', role_id)

    def _get_user_or_raise(self, user_id: Any) -> User:
        try:
            return User.objects.get(id=user_id)
        except User.DoesNotExist:
            raise NotFoundError('User', user_id)

    def _existing_permission_ids(self, permission_ids: Iterable[str]) -> set:
        requested = set(permission_ids or [])
        existing = set(Permission.objects.filter(id__in=requested).values_list('id', flat=True))
        unknown = requested - existing
        if unknown:
            raise ValidationError(
                {'permission_ids': [f"Unknown permission: {pid}" for pid in sorted(unknown)]}
            )
        return existing
