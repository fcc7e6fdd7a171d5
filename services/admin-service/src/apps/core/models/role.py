"""
Role and Permission models for the RBAC engine.

Permissions aggregate additively: a user holds every permission granted
by any of their roles. There are no deny rules or negative grants.
"""

import uuid
from django.db import models


class Permission(models.Model):
    """
    Atomic capability identified as ``module:action`` (e.g. ``user:create``).
    Catalog entries are created by seeding, not by end-user flows.
    """

    id = models.CharField(
        max_length=100,
        primary_key=True,
        help_text='Permission identifier in module:action form'
    )
    module = models.CharField(
        max_length=50,
        db_index=True,
        help_text='Module the permission belongs to (e.g. user, role)'
    )
    description = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'permissions'
        ordering = ['module', 'id']

    def __str__(self):
        return self.id

    @property
    def action(self):
        return self.id.split(':', 1)[1] if ':' in self.id else self.id


class Role(models.Model):
    """
    Named, described bag of permissions.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True, null=True)

    permissions = models.ManyToManyField(
        Permission,
        through='RolePermission',
        related_name='roles'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'roles'
        ordering = ['name']

    def __str__(self):
        return self.name

    def get_permission_ids(self):
        return set(
            RolePermission.objects.filter(role=self).values_list('permission_id', flat=True)
        )


class RolePermission(models.Model):
    """
    Join between Role and Permission.
    """

    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='role_permissions'
    )
    permission = models.ForeignKey(
        Permission,
        on_delete=models.CASCADE,
        related_name='role_permissions'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'role_permissions'
        constraints = [
            models.UniqueConstraint(
                fields=['role', 'permission'],
                name='unique_role_permission'
            )
        ]
        indexes = [
            models.Index(fields=['permission']),
        ]

    def __str__(self):
        return f"{self.role_id} -> {self.permission_id}"


class UserRole(models.Model):
    """
    Role assignment for a user.

    The unique (user, role) constraint is what rejects concurrent duplicate
    assignments; the application-level check only produces a friendlier error.
    """

    user = models.ForeignKey(
        'core.User',
        on_delete=models.CASCADE,
        related_name='user_roles'
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='user_roles'
    )

    # Audit
    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.UUIDField(
        null=True,
        blank=True,
        help_text='User who made the assignment'
    )

    class Meta:
        db_table = 'user_roles'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'role'],
                name='unique_user_role'
            )
        ]
        indexes = [
            models.Index(fields=['user']),
            models.Index(fields=['role']),
        ]

    def __str__(self):
        return f"{self.user_id} - {self.role.name}"
