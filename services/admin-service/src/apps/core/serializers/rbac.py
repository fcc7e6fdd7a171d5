"""
RBAC Serializers

Input validation for role management and read models for permissions,
roles and assignments.
"""

from rest_framework import serializers

from apps.core.models import Permission, Role, UserRole


class PermissionSerializer(serializers.ModelSerializer):

    class Meta:
        model = Permission
        fields = ['id', 'module', 'action', 'description']
        read_only_fields = fields


class RoleSerializer(serializers.ModelSerializer):
    """
    Role with its permission identifiers.
    """

    permissions = serializers.SerializerMethodField()

    class Meta:
        model = Role
        fields = ['id', 'name', 'description', 'permissions', 'created_at', 'updated_at']
        read_only_fields = fields

    def get_permissions(self, obj):
        return sorted(obj.get_permission_ids())


class RoleWriteSerializer(serializers.Serializer):
    """
    Serializer for creating and updating roles.
    """

    name = serializers.CharField(max_length=100, trim_whitespace=True)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    permission_ids = serializers.ListField(
        child=serializers.CharField(max_length=100),
        required=False,
        allow_empty=True
    )


class RoleAssignmentSerializer(serializers.Serializer):
    """
    Serializer for assigning or revoking a role.
    """

    user_id = serializers.UUIDField()
    role_id = serializers.UUIDField()
    actor_id = serializers.UUIDField(required=False, allow_null=True)


class UserRoleSerializer(serializers.ModelSerializer):
    role_name = serializers.CharField(source='role.name', read_only=True)

    class Meta:
        model = UserRole
        fields = ['user_id', 'role_id', 'role_name', 'created_at', 'created_by']
        read_only_fields = fields
