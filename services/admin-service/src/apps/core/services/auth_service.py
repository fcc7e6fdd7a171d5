"""
Authentication Service - Credentials, sessions and password recovery

Handles:
- Registration with password policy enforcement
- Login issuing a JWT backed by a server-side session
- Token authentication with a live session check
- Logout and session revocation
- Password change and email based password reset

Access tokens carry identity only. Their ``jti`` claim is the session
token, so deleting the session revokes the token on its next use, and
permissions are always resolved live by the PermissionService.
"""

import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

import jwt
from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.core.context import get_client_ip, get_current_request, get_request_id
from apps.core.events import (
    publish_event,
    PasswordChangedEvent,
    PasswordResetCompletedEvent,
    PasswordResetRequestedEvent,
    UserLoginEvent,
    UserLogoutEvent,
    UserRegisteredEvent,
)
from apps.core.exceptions import (
    ConflictError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from apps.core.models import PasswordResetToken, User, UserCredentials
from apps.core.serializers import (
    LoginSerializer,
    PasswordChangeSerializer,
    PasswordResetConfirmSerializer,
    PasswordResetRequestSerializer,
    RegisterSerializer,
    UserSerializer,
    password_policy_violations,
)
from apps.core.validation import validate_input

from .email_service import EmailService, password_reset_email
from .session_service import SessionService

logger = logging.getLogger(__name__)

PASSWORD_RESET_MESSAGE = (
    'Si tu cuenta existe, recibirás un correo con instrucciones para restablecer tu contraseña.'
)


class AuthService:
    """
    Authentication flows.

    Collaborators:
        session_service: server-side session registry
        email_sender: anything with ``send(to, subject, body)``
    """

    def __init__(
        self,
        session_service: Optional[SessionService] = None,
        email_sender: Any = None
    ):
        self.session_service = session_service or SessionService()
        self.email_sender = email_sender or EmailService()
        self._load_settings()

    def _load_settings(self):
        """Load settings from Django settings"""
        auth_settings = getattr(settings, 'AUTH_SETTINGS', {})
        self.SESSION_LIFETIME = auth_settings.get('SESSION_LIFETIME', 30 * 24 * 60 * 60)
        self.PASSWORD_RESET_TOKEN_LIFETIME = auth_settings.get('PASSWORD_RESET_TOKEN_LIFETIME', 30 * 60)
        self.PASSWORD_MIN_LENGTH = auth_settings.get('PASSWORD_MIN_LENGTH', 8)
        self.MAX_SESSIONS_PER_USER = auth_settings.get('MAX_SESSIONS_PER_USER')

        self.JWT_SECRET_KEY = getattr(settings, 'JWT_SECRET_KEY', settings.SECRET_KEY)
        self.JWT_ALGORITHM = getattr(settings, 'JWT_ALGORITHM', 'HS256')
        self.ACCESS_TOKEN_LIFETIME = getattr(
            settings, 'JWT_ACCESS_TOKEN_LIFETIME', timedelta(seconds=self.SESSION_LIFETIME)
        )

    # ==================== REGISTRATION ====================

    def register(
        self,
        email: str,
        password: str,
        name: str = None,
        first_name: str = None,
        last_name: str = None,
        ip_address: str = None,
        user_agent: str = None
    ) -> User:
        """
        Register a new user with password credentials.

        Returns:
            Created User object

        Raises:
            ValidationError: If input is malformed or the password breaks policy
            ConflictError: If the email is already registered
        """
        data = validate_input(RegisterSerializer, {
            'email': email,
            'password': password,
            'name': name,
            'first_name': first_name,
            'last_name': last_name,
        })
        self._validate_password_policy(data['password'])

        if User.objects.filter(email__iexact=data['email']).exists():
            raise ConflictError("Email address is already registered", error_code='EMAIL_TAKEN')

        try:
            with transaction.atomic():
                user = User.objects.create(
                    email=data['email'],
                    name=data.get('name') or None,
                    first_name=data.get('first_name') or None,
                    last_name=data.get('last_name') or None,
                )
                credentials = UserCredentials(user=user)
                credentials.set_password(data['password'])
                credentials.save()
        except IntegrityError:
            raise ConflictError("Email address is already registered", error_code='EMAIL_TAKEN')

        publish_event(UserRegisteredEvent(
            user_id=str(user.id),
            email=user.email,
            name=user.name,
            **self._event_context(ip_address, user_agent)
        ))

        logger.info(f"User registered: {user.email}")
        return user

    # ==================== LOGIN / LOGOUT ====================

    def login(
        self,
        email: str,
        password: str,
        ip_address: str = None,
        user_agent: str = None
    ) -> Dict[str, Any]:
        """
        Verify credentials and open a session.

        Args:
            email: User's email address
            password: Plaintext password
            ip_address: Client IP address
            user_agent: Client user agent

        Returns:
            Dict with access_token, token_type, expires_at and user

        Raises:
            UnauthenticatedError: On any credential failure, with one generic message
        """
        data = validate_input(LoginSerializer, {'email': email, 'password': password})
        context = self._event_context(ip_address, user_agent)

        credentials = UserCredentials.objects.select_related('user').filter(
            user__email__iexact=data['email']
        ).first()
        if credentials is None:
            # Unknown emails cost one hash, same as a wrong password
            make_password(data['password'])
        if credentials is None or not credentials.check_password(data['password']):
            logger.info(f"Failed login attempt for: {data['email']}")
            raise UnauthenticatedError("Invalid email or password", error_code='INVALID_CREDENTIALS')

        user = credentials.user
        now = timezone.now()
        expires = now + timedelta(seconds=self.SESSION_LIFETIME)
        session_token = secrets.token_urlsafe(32)

        with transaction.atomic():
            self.session_service.create(
                session_token=session_token,
                user_id=user.id,
                expires=expires,
                ip_address=context['ip_address'],
                user_agent=context['user_agent'],
            )
            if self.MAX_SESSIONS_PER_USER:
                self.session_service.enforce_session_limit(user.id, self.MAX_SESSIONS_PER_USER)

        access_token = self._generate_access_token(user, session_token, now)

        publish_event(UserLoginEvent(
            user_id=str(user.id),
            email=user.email,
            session_expires=expires.isoformat(),
            **context
        ))

        logger.info(f"User logged in: {user.email}")
        return {
            'access_token': access_token,
            'token_type': 'Bearer',
            'expires_at': expires,
            'user': UserSerializer(user).data,
        }

    def logout(self, session_token: str) -> bool:
        """
        End the session behind an access token.

        Returns:
            True if a session was deleted, False if it was already gone
        """
        session = self.session_service.get(session_token)
        if session is None:
            return False

        deleted = self.session_service.delete(session_token)
        if deleted:
            publish_event(UserLogoutEvent(
                user_id=str(session.user_id),
                email=session.user.email,
                **self._event_context()
            ))
            logger.info(f"User logged out: {session.user_id}")
        return deleted

    def authenticate_token(self, token: str) -> Tuple[User, Dict[str, Any]]:
        """
        Validate an access token and its backing session.

        Returns:
            Tuple of (User, token claims)

        Raises:
            UnauthenticatedError: If the token is invalid, expired or its
                session no longer exists
        """
        try:
            payload = jwt.decode(
                token,
                self.JWT_SECRET_KEY,
                algorithms=[self.JWT_ALGORITHM],
                options={'require': ['exp', 'iat', 'sub', 'jti']}
            )
        except jwt.ExpiredSignatureError:
            raise UnauthenticatedError('Token has expired', error_code='TOKEN_EXPIRED')
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            raise UnauthenticatedError('Invalid token', error_code='INVALID_TOKEN')

        if payload.get('type') != 'access':
            raise UnauthenticatedError('Invalid token', error_code='INVALID_TOKEN')

        if not self.session_service.is_valid(payload['jti']):
            raise UnauthenticatedError('Session has expired or was revoked', error_code='SESSION_REVOKED')

        user = User.objects.filter(id=payload['sub']).first()
        if user is None:
            raise UnauthenticatedError('Invalid token', error_code='INVALID_TOKEN')

        return user, payload

    def _generate_access_token(self, user: User, session_token: str, issued_at) -> str:
        """Identity-only access token; ``jti`` links it to its session."""
        payload = {
            'sub': str(user.id),
            'email': user.email,
            'jti': session_token,
            'iat': issued_at,
            'exp': issued_at + self.ACCESS_TOKEN_LIFETIME,
            'type': 'access',
        }
        return jwt.encode(payload, self.JWT_SECRET_KEY, algorithm=self.JWT_ALGORITHM)

    # ==================== PASSWORD MANAGEMENT ====================

    def change_password(self, user_id: Any, current_password: str, new_password: str) -> int:
        """
        Change a user's password and sign them out everywhere.

        The new hash and the session purge commit together.

        Returns:
            Number of sessions revoked

        Raises:
            ValidationError: If input is malformed, the new password breaks
                policy or the user has no password credentials
            NotFoundError: If the user does not exist
            UnauthenticatedError: If the current password is wrong
        """
        data = validate_input(PasswordChangeSerializer, {
            'user_id': user_id,
            'current_password': current_password,
            'new_password': new_password,
        })
        self._validate_password_policy(data['new_password'])

        user = User.objects.filter(id=data['user_id']).first()
        if user is None:
            raise NotFoundError('User', data['user_id'])

        credentials = UserCredentials.objects.filter(user=user).first()
        if credentials is None:
            raise ValidationError(
                {'current_password': ["This account does not use a password."]},
                detail="User has no password credentials",
                error_code='NO_CREDENTIALS'
            )

        if not credentials.check_password(data['current_password']):
            raise UnauthenticatedError("Current password is incorrect", error_code='INVALID_PASSWORD')

        with transaction.atomic():
            credentials.set_password(data['new_password'])
            credentials.save()
            revoked = self.session_service.delete_all_for_user(user.id)

        publish_event(PasswordChangedEvent(
            user_id=str(user.id),
            email=user.email,
            sessions_revoked=revoked,
            **self._event_context()
        ))

        logger.info(f"Password changed: {user.email}")
        return revoked

    def request_password_reset(
        self,
        email: str,
        ip_address: str = None,
        user_agent: str = None
    ) -> Dict[str, Any]:
        """
        Start the password reset flow.

        The result is the same whether or not the email belongs to an
        account. When it does, earlier tokens are discarded, a new one is
        stored hashed and the plaintext is emailed.
        """
        data = validate_input(PasswordResetRequestSerializer, {'email': email})
        result = {'success': True, 'message': PASSWORD_RESET_MESSAGE}

        user = User.objects.filter(email__iexact=data['email'], credentials__isnull=False).first()
        if user is None:
            logger.info(f"Password reset requested for unknown email: {data['email']}")
            return result

        with transaction.atomic():
            PasswordResetToken.objects.filter(user=user).delete()
            _, token = PasswordResetToken.create_for_user(
                user,
                lifetime_seconds=self.PASSWORD_RESET_TOKEN_LIFETIME
            )

        try:
            self.email_sender.send(user.email, *password_reset_email(token))
        except Exception as e:
            logger.error(f"Failed to send password reset email to {user.email}: {e}", exc_info=True)

        publish_event(PasswordResetRequestedEvent(
            user_id=str(user.id),
            email=user.email,
            **self._event_context(ip_address, user_agent)
        ))

        logger.info(f"Password reset requested: {user.email}")
        return result

    def validate_reset_token(self, token: str) -> PasswordResetToken:
        """
        Look up a reset token by its hash. An expired token is deleted.

        Raises:
            ValidationError: If the token is unknown or expired
        """
        record = PasswordResetToken.objects.select_related('user').filter(
            token=PasswordResetToken.hash_token(token or '')
        ).first()

        if record is None:
            raise ValidationError(
                {'token': ["Invalid password reset token."]},
                detail="Invalid password reset token",
                error_code='INVALID_TOKEN'
            )

        if record.is_expired:
            record.delete()
            raise ValidationError(
                {'token': ["Password reset token has expired."]},
                detail="Password reset token has expired",
                error_code='TOKEN_EXPIRED'
            )

        return record

    def reset_password(
        self,
        token: str,
        new_password: str,
        ip_address: str = None,
        user_agent: str = None
    ) -> User:
        """
        Set a new password with a reset token.

        Replaces the credentials, consumes the user's reset tokens and
        revokes all sessions in one transaction.

        Raises:
            ValidationError: If the token is invalid or expired, or the new
                password breaks policy
        """
        data = validate_input(PasswordResetConfirmSerializer, {
            'token': token,
            'new_password': new_password,
        })
        self._validate_password_policy(data['new_password'])

        record = self.validate_reset_token(data['token'])
        user = record.user

        with transaction.atomic():
            # Of two concurrent resets with one token, only one deletes the row
            claimed, _ = PasswordResetToken.objects.filter(pk=record.pk).delete()
            if not claimed:
                raise ValidationError(
                    {'token': ["Invalid password reset token."]},
                    detail="Invalid password reset token",
                    error_code='INVALID_TOKEN'
                )

            UserCredentials.objects.update_or_create(
                user=user,
                defaults={'hashed_password': make_password(data['new_password'])}
            )
            PasswordResetToken.objects.filter(user=user).delete()
            revoked = self.session_service.delete_all_for_user(user.id)

        publish_event(PasswordResetCompletedEvent(
            user_id=str(user.id),
            email=user.email,
            sessions_revoked=revoked,
            **self._event_context(ip_address, user_agent)
        ))

        logger.info(f"Password reset completed: {user.email}")
        return user

    def sweep_expired_reset_tokens(self) -> int:
        """Delete reset tokens past their expiry."""
        deleted, _ = PasswordResetToken.objects.filter(expires_at__lt=timezone.now()).delete()
        logger.info(f"Swept {deleted} expired password reset tokens")
        return deleted

    # ==================== HELPERS ====================

    def _validate_password_policy(self, password: str) -> None:
        """
        Raises:
            ValidationError: Listing every rule the password breaks
        """
        violations = password_policy_violations(password, min_length=self.PASSWORD_MIN_LENGTH)
        if violations:
            raise ValidationError(
                {'password': violations},
                detail="Password does not meet security requirements",
                error_code='PASSWORD_POLICY'
            )

    def _event_context(self, ip_address: str = None, user_agent: str = None) -> Dict[str, Any]:
        """Client details and correlation id for published events."""
        request = get_current_request()
        if request is None:
            return {'ip_address': ip_address, 'user_agent': user_agent, 'correlation_id': None}
        return {
            'ip_address': ip_address or get_client_ip(request),
            'user_agent': user_agent or request.META.get('HTTP_USER_AGENT') or None,
            'correlation_id': get_request_id(request),
        }
