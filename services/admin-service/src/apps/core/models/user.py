"""
User identity models.

A User is the root aggregate for its credentials, sessions and role
assignments; deleting a user cascades to all of them.
"""

import uuid
from django.contrib.auth.hashers import check_password, make_password
from django.db import models
from django.utils import timezone


class User(models.Model):
    """
    Identity record for a person using the admin panel.
    Authentication data lives in UserCredentials (absent for OAuth identities).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Identity
    email = models.EmailField(unique=True, db_index=True)
    name = models.CharField(max_length=255, blank=True, null=True, help_text='Display name')
    first_name = models.CharField(max_length=150, blank=True, null=True)
    last_name = models.CharField(max_length=150, blank=True, null=True)
    email_verified = models.DateTimeField(
        blank=True,
        null=True,
        help_text='When the email address was verified'
    )
    image = models.CharField(max_length=500, blank=True, null=True, help_text='Avatar URL')

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'
        ordering = ['-created_at']

    def __str__(self):
        return self.email

    @property
    def full_name(self):
        if self.first_name or self.last_name:
            return f"{self.first_name or ''} {self.last_name or ''}".strip()
        return self.name or self.email

    @property
    def is_authenticated(self):
        return True

    @property
    def has_password(self):
        return UserCredentials.objects.filter(user_id=self.id).exists()


class UserCredentials(models.Model):
    """
    Password credentials, one-to-one with User.
    Only an adaptive hash is stored; it is replaced, never patched.
    """

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name='credentials'
    )
    hashed_password = models.CharField(max_length=255)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'user_credentials'

    def __str__(self):
        return f"Credentials for {self.user_id}"

    def set_password(self, raw_password):
        self.hashed_password = make_password(raw_password)

    def check_password(self, raw_password):
        return check_password(raw_password, self.hashed_password)


class Session(models.Model):
    """
    Server-side record backing an issued access token.

    The token's ``jti`` claim equals ``session_token``; deleting the row
    revokes the token immediately even if its signature is still valid.
    """

    session_token = models.CharField(max_length=255, unique=True, db_index=True)
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='sessions'
    )
    expires = models.DateTimeField(db_index=True)

    # Client info
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    user_agent = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sessions'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'expires']),
            models.Index(fields=['expires']),
        ]

    def __str__(self):
        return f"Session for {self.user_id} (expires {self.expires.isoformat()})"

    @property
    def is_expired(self):
        return self.expires <= timezone.now()

    @property
    def is_valid(self):
        return not self.is_expired
