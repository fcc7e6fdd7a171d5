"""
Rate Limiting Middleware

Applies the named policies of settings.RATE_LIMITS to the path prefixes
listed in settings.RATE_LIMIT_PATHS, keyed by client IP.
"""

import logging
from typing import Dict, Optional

from django.conf import settings
from django.http import JsonResponse
from rest_framework import status

from apps.core.context import get_client_ip
from apps.core.services.rate_limiter import RateLimiter, RateLimitResult

logger = logging.getLogger(__name__)


class RateLimitMiddleware:
    """
    Middleware that rate limits configured endpoints.

    Features:
    - Per-IP sliding window limits
    - Policies shared between endpoints by name
    - Rate limit headers on every limited response
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.enabled = getattr(settings, 'RATE_LIMITING_ENABLED', True)
        self.paths: Dict[str, str] = getattr(settings, 'RATE_LIMIT_PATHS', {})
        self._limiters: Dict[str, RateLimiter] = {}

    def __call__(self, request):
        limiter = self._get_limiter(request.path) if self.enabled else None
        if limiter is None:
            return self.get_response(request)

        identifier = f"ip:{get_client_ip(request) or 'unknown'}"
        result = limiter.check(identifier)

        if not result.allowed:
            logger.warning(f"Rate limit '{limiter.name}' exceeded for {identifier} on {request.path}")
            return self._rate_limit_response(limiter, result)

        response = self.get_response(request)

        response['X-RateLimit-Limit'] = str(result.limit)
        response['X-RateLimit-Remaining'] = str(result.remaining)
        response['X-RateLimit-Reset'] = str(result.reset_at)

        return response

    def _get_limiter(self, path: str) -> Optional[RateLimiter]:
        """Limiter for the first configured prefix matching ``path``."""
        for prefix, policy in self.paths.items():
            if path.startswith(prefix):
                if policy not in self._limiters:
                    self._limiters[policy] = RateLimiter.from_settings(policy)
                return self._limiters[policy]
        return None

    def _rate_limit_response(self, limiter: RateLimiter, result: RateLimitResult) -> JsonResponse:
        """Return a 429 Too Many Requests response."""
        retry_after = result.retry_after

        response = JsonResponse(
            {
                'success': False,
                'error': {
                    'code': 'RATE_LIMIT_EXCEEDED',
                    'message': f'Rate limit exceeded. Maximum {limiter.limit} requests per {limiter.window} seconds.',
                    'retry_after': retry_after,
                }
            },
            status=status.HTTP_429_TOO_MANY_REQUESTS
        )

        response['Retry-After'] = str(retry_after)
        response['X-RateLimit-Limit'] = str(result.limit)
        response['X-RateLimit-Remaining'] = '0'
        response['X-RateLimit-Reset'] = str(result.reset_at)

        return response
