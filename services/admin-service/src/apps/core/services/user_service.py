"""
User Service - User administration

Handles:
- User CRUD from the admin panel
- Search and pagination
- Audit trail of every change

Deleting a user is a hard delete cascading to credentials, sessions, role
assignments and reset tokens. Audit entries only hold the user id, so the
user's history survives the deletion.
"""

import logging
from typing import Any, List, Optional, Tuple

from django.db import IntegrityError, transaction
from django.db.models import Q

from apps.core.exceptions import ConflictError, NotFoundError
from apps.core.models import AuditLog, User, UserCredentials
from apps.core.serializers import UserCreateSerializer, UserUpdateSerializer
from apps.core.validation import parse_uuid, validate_input

from .audit_service import AuditOptions, AuditService

logger = logging.getLogger(__name__)

USERS_MODULE = 'users'


class UserService:
    """
    User administration.

    Collaborators:
        audit_service: where user changes are recorded
    """

    DEFAULT_PAGE_SIZE = 50
    MAX_PAGE_SIZE = 500

    def __init__(self, audit_service: Optional[AuditService] = None):
        self.audit_service = audit_service or AuditService()

    def create_user(
        self,
        email: str,
        name: str = None,
        password: str = None,
        first_name: str = None,
        last_name: str = None,
        image: str = None,
        created_by: Any = None
    ) -> User:
        """
        Create a user from the admin panel.

        Without a password no credentials are created and the user can
        only sign in through an external identity provider.

        Raises:
            ValidationError: If input is malformed
            ConflictError: If the email is already registered
        """
        data = validate_input(UserCreateSerializer, {
            'email': email,
            'name': name,
            'first_name': first_name,
            'last_name': last_name,
            'image': image,
            'password': password,
        })
        password = data.get('password')

        if User.objects.filter(email__iexact=data['email']).exists():
            raise ConflictError(f"User with email '{data['email']}' already exists", error_code='USER_EXISTS')

        try:
            with transaction.atomic():
                user = User.objects.create(
                    email=data['email'],
                    name=data.get('name') or None,
                    first_name=data.get('first_name') or None,
                    last_name=data.get('last_name') or None,
                    image=data.get('image') or None,
                )
                if password:
                    credentials = UserCredentials(user=user)
                    credentials.set_password(password)
                    credentials.save()

                self.audit_service.log(
                    action='create',
                    module=USERS_MODULE,
                    area=AuditLog.Area.ADMIN,
                    user_id=created_by,
                    entity_type='User',
                    entity_id=user.id,
                    new_values={
                        'email': user.email,
                        'name': user.name,
                        'has_password': bool(password),
                    }
                )
        except IntegrityError:
            raise ConflictError(f"User with email '{data['email']}' already exists", error_code='USER_EXISTS')

        logger.info(f"User created: {user.email}")
        return user

    def get_user(self, user_id: Any) -> User:
        """
        Raises:
            NotFoundError: If the user does not exist
        """
        user_id = parse_uuid(user_id, 'user_id')
        try:
            return User.objects.get(id=user_id)
        except User.DoesNotExist:
            raise NotFoundError('User', user_id)

    def list_users(
        self,
        search: str = None,
        limit: int = None,
        offset: int = 0
    ) -> Tuple[List[User], int]:
        """
        List users, newest first.

        Args:
            search: Case-insensitive match on email and names
            limit: Page size (default 50, capped at 500)
            offset: Rows to skip

        Returns:
            Tuple of (users list, total count)
        """
        query = User.objects.all()

        if search:
            query = query.filter(
                Q(email__icontains=search) |
                Q(name__icontains=search) |
                Q(first_name__icontains=search) |
                Q(last_name__icontains=search)
            )

        total = query.count()

        limit = min(limit or self.DEFAULT_PAGE_SIZE, self.MAX_PAGE_SIZE)
        offset = max(offset or 0, 0)
        users = list(query.order_by('-created_at')[offset:offset + limit])

        return users, total

    @transaction.atomic
    def update_user(self, user_id: Any, updated_by: Any = None, **fields) -> User:
        """
        Update profile fields. Only fields that actually change are written
        and recorded.

        Raises:
            NotFoundError: If the user does not exist
            ValidationError: If a value is malformed
            ConflictError: If the new email belongs to another user
        """
        user = self.get_user(user_id)
        data = validate_input(UserUpdateSerializer, fields, partial=True)

        old_values = {}
        new_values = {}
        for field, value in data.items():
            if getattr(user, field) != value:
                old_values[field] = getattr(user, field)
                new_values[field] = value

        if not new_values:
            return user

        if 'email' in new_values and User.objects.filter(
            email__iexact=new_values['email']
        ).exclude(id=user.id).exists():
            raise ConflictError(f"User with email '{new_values['email']}' already exists", error_code='USER_EXISTS')

        for field, value in new_values.items():
            setattr(user, field, value)
        user.save(update_fields=list(new_values) + ['updated_at'])

        self.audit_service.log_entity_change(
            AuditOptions(
                action='update',
                module=USERS_MODULE,
                user_id=updated_by,
                area=AuditLog.Area.ADMIN,
                entity_type='User',
                entity_id=user.id,
            ),
            old_values=old_values,
            new_values=new_values,
        )

        logger.info(f"User updated: {user.email}, fields: {sorted(new_values)}")
        return user

    @transaction.atomic
    def delete_user(self, user_id: Any, deleted_by: Any = None) -> None:
        """
        Permanently delete a user and everything the user owns.

        Raises:
            NotFoundError: If the user does not exist
        """
        user = self.get_user(user_id)
        email = user.email
        entity_id = user.id

        user.delete()

        self.audit_service.log(
            action='delete',
            module=USERS_MODULE,
            area=AuditLog.Area.ADMIN,
            user_id=deleted_by,
            entity_type='User',
            entity_id=entity_id,
            old_values={'email': email},
            metadata={'permanent': True}
        )

        logger.warning(f"User permanently deleted: {email}")
