"""
Password reset token model
"""

import hashlib
import secrets
from datetime import timedelta

from django.db import models
from django.utils import timezone


class PasswordResetToken(models.Model):
    """
    Single-use password recovery token.
    Only the sha256 of the token is stored; the plaintext goes out by email.
    """

    user = models.ForeignKey(
        'core.User',
        on_delete=models.CASCADE,
        related_name='password_reset_tokens'
    )
    token = models.CharField(
        max_length=64,
        unique=True,
        db_index=True,
        help_text='sha256 hex digest of the emailed token'
    )
    expires_at = models.DateTimeField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'password_reset_tokens'
        ordering = ['-created_at']

    def __str__(self):
        return f"PasswordResetToken for {self.user_id}"

    @property
    def is_expired(self):
        return timezone.now() > self.expires_at

    @staticmethod
    def hash_token(token):
        """Hash a plaintext token for storage and lookup"""
        return hashlib.sha256(token.encode()).hexdigest()

    @classmethod
    def create_for_user(cls, user, lifetime_seconds=1800):
        """
        Create a token for ``user``.

        Returns:
            Tuple of (token record, plaintext token)
        """
        plaintext = secrets.token_hex(32)
        record = cls.objects.create(
            user=user,
            token=cls.hash_token(plaintext),
            expires_at=timezone.now() + timedelta(seconds=lifetime_seconds)
        )
        return record, plaintext
