"""
User Serializers
"""

from rest_framework import serializers

from apps.core.models import User, Session


class UserSerializer(serializers.ModelSerializer):
    """
    Public representation of a user.
    """

    full_name = serializers.CharField(read_only=True)
    has_password = serializers.BooleanField(read_only=True)

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'name',
            'first_name',
            'last_name',
            'full_name',
            'email_verified',
            'image',
            'has_password',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class UserCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    name = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    first_name = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=150)
    last_name = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=150)
    image = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=500)
    password = serializers.CharField(required=False, write_only=True, allow_null=True, trim_whitespace=False)

    def validate_email(self, value):
        return value.lower().strip()


class UserUpdateSerializer(serializers.Serializer):
    """
    Partial profile update. Only the fields present are changed.
    """

    email = serializers.EmailField(required=False)
    name = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    first_name = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=150)
    last_name = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=150)
    image = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=500)
    email_verified = serializers.DateTimeField(required=False, allow_null=True)

    def validate_email(self, value):
        return value.lower().strip()


class SessionSerializer(serializers.ModelSerializer):
    """
    Session as shown on the "your devices" screen. The token is never exposed.
    """

    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = Session
        fields = ['id', 'user_id', 'expires', 'ip_address', 'user_agent', 'is_expired', 'created_at']
        read_only_fields = fields
