"""
Authentication Serializers

Input validation for the authentication flows.
"""

from rest_framework import serializers


SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{}|;':\",./<>?`~\\"


def password_policy_violations(value, min_length=8):
    """Return the list of policy rules ``value`` breaks."""
    errors = []

    if len(value) < min_length:
        errors.append(f"Password must be at least {min_length} characters.")
    if not any(c.isupper() for c in value):
        errors.append("Password must contain at least one uppercase letter.")
    if not any(c.islower() for c in value):
        errors.append("Password must contain at least one lowercase letter.")
    if not any(c.isdigit() for c in value):
        errors.append("Password must contain at least one number.")
    if not any(c in SPECIAL_CHARACTERS or not c.isalnum() for c in value):
        errors.append("Password must contain at least one special character.")

    return errors


class RegisterSerializer(serializers.Serializer):
    """
    Serializer for self-registration.
    """

    email = serializers.EmailField(required=True)
    password = serializers.CharField(required=True, write_only=True, trim_whitespace=False)
    name = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    first_name = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=150)
    last_name = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=150)

    def validate_email(self, value):
        return value.lower().strip()


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField(required=True)
    password = serializers.CharField(required=True, write_only=True, trim_whitespace=False)

    def validate_email(self, value):
        return value.lower().strip()


class PasswordChangeSerializer(serializers.Serializer):
    """
    Serializer for password change (authenticated user).
    """

    user_id = serializers.UUIDField(required=True)
    current_password = serializers.CharField(required=True, write_only=True, trim_whitespace=False)
    new_password = serializers.CharField(required=True, write_only=True, trim_whitespace=False)

    def validate(self, attrs):
        if attrs['current_password'] == attrs['new_password']:
            raise serializers.ValidationError({
                'new_password': "New password must be different from the current password."
            })
        return attrs


class PasswordResetRequestSerializer(serializers.Serializer):
    email = serializers.EmailField(required=True)

    def validate_email(self, value):
        return value.lower().strip()


class PasswordResetConfirmSerializer(serializers.Serializer):
    token = serializers.CharField(required=True, min_length=1)
    new_password = serializers.CharField(required=True, write_only=True, trim_whitespace=False)
