"""
DRF authentication for bearer access tokens.

Loaded through REST_FRAMEWORK['DEFAULT_AUTHENTICATION_CLASSES'] while
rest_framework.views is being imported, so the service layer is only
imported when a request is authenticated.
"""

from typing import Optional

from rest_framework import authentication, exceptions

from apps.core.exceptions import UnauthenticatedError


def extract_bearer_token(auth_header: str) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    parts = auth_header.split()

    if len(parts) != 2:
        return None

    scheme, token = parts

    if scheme.lower() != 'bearer':
        return None

    return token


class JWTAuthentication(authentication.BaseAuthentication):
    """
    DRF Authentication class for JWT tokens.

    Use this in your ViewSet authentication_classes for DRF integration.
    """

    keyword = 'Bearer'

    def authenticate(self, request):
        """
        Returns:
            Tuple of (user, claims) or None when no bearer token is sent
        """
        token = extract_bearer_token(request.META.get('HTTP_AUTHORIZATION', ''))
        if not token:
            return None

        from apps.core.services.auth_service import AuthService

        try:
            return AuthService().authenticate_token(token)
        except UnauthenticatedError as e:
            raise exceptions.AuthenticationFailed(e.message)

    def authenticate_header(self, request):
        return self.keyword
