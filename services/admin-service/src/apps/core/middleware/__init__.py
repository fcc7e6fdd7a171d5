"""
Admin Service Middleware

This module exports all middleware for the Admin Service.
"""

from .request_context import RequestContextMiddleware
from .rate_limit import RateLimitMiddleware
from .jwt_auth import JWTAuthenticationMiddleware

__all__ = [
    'RequestContextMiddleware',
    'RateLimitMiddleware',
    'JWTAuthenticationMiddleware',
]
