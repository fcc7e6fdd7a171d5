"""
JWT Authentication Middleware

Authenticates API requests with the bearer access token issued at login.
Every request re-checks the backing session, so logout and password
changes take effect immediately.
"""

import logging

from django.conf import settings
from django.http import JsonResponse
from rest_framework import status

from apps.core.authentication import extract_bearer_token
from apps.core.exceptions import UnauthenticatedError
from apps.core.services.auth_service import AuthService

logger = logging.getLogger(__name__)


class JWTAuthenticationMiddleware:
    """
    Middleware that authenticates requests using JWT tokens.

    Features:
    - Validates JWT access tokens from Authorization header
    - Live session check on every request
    - Attaches user, claims and session token to the request
    - Exempts configured public endpoints
    """

    # Endpoints that don't require authentication
    PUBLIC_ENDPOINTS = [
        '/api/auth/login',
        '/api/auth/register',
        '/api/auth/forgot-password',
        '/api/auth/reset-password',
        '/api/auth/validate-reset-token',
        '/health/',
    ]

    def __init__(self, get_response, auth_service: AuthService = None):
        self.get_response = get_response
        self.auth_service = auth_service or AuthService()
        self.public_endpoints = getattr(settings, 'AUTH_PUBLIC_ENDPOINTS', self.PUBLIC_ENDPOINTS)

    def __call__(self, request):
        # Skip authentication for public endpoints
        if self._is_public_endpoint(request.path):
            return self.get_response(request)

        auth_header = request.META.get('HTTP_AUTHORIZATION', '')
        if not auth_header:
            return self._unauthorized_response('Authorization header missing')

        token = extract_bearer_token(auth_header)
        if not token:
            return self._unauthorized_response('Invalid authorization header format')

        try:
            user, payload = self.auth_service.authenticate_token(token)
        except UnauthenticatedError as e:
            logger.debug(f"Rejected bearer token on {request.path}: {e.error_code}")
            return self._unauthorized_response(e.message, e.error_code)

        # Attach user and session to request
        request.user = user
        request.auth_token = token
        request.jwt_payload = payload
        request.session_token = payload['jti']

        return self.get_response(request)

    def _is_public_endpoint(self, path: str) -> bool:
        """Check if the endpoint is public (no auth required)."""
        return any(path.startswith(endpoint) for endpoint in self.public_endpoints)

    def _unauthorized_response(self, message: str, code: str = 'UNAUTHORIZED') -> JsonResponse:
        """Return a 401 Unauthorized response."""
        return JsonResponse(
            {
                'success': False,
                'error': {
                    'code': code,
                    'message': message,
                }
            },
            status=status.HTTP_401_UNAUTHORIZED
        )
