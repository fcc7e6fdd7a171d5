"""
Rate Limiter

Sliding window request counter keyed by client token (IP address, user id,
email...). State lives in the ``rate_limit`` cache: one entry per token
holding the timestamps of its requests inside the window, expiring with
the window. The cache's MAX_ENTRIES bounds the number of tracked tokens;
least recently used tokens are culled first.

Counts are per process, which is enough for abuse prevention but not for
strict quota enforcement.
"""

import logging
import math
import time
from dataclasses import dataclass

from django.conf import settings
from django.core.cache import caches

from apps.core.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

RATE_LIMIT_CACHE = 'rate_limit'

DEFAULT_POLICY = {'limit': 100, 'window': 60}


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int

    @property
    def retry_after(self) -> int:
        """Seconds until the next request would be allowed."""
        return max(1, self.reset_at - int(time.time()))


class RateLimiter:
    """
    Per-token sliding window limiter allowing ``limit`` requests every
    ``window`` seconds.

    Usage:
        limiter = RateLimiter.from_settings('password_reset')
        limiter.hit(client_ip)  # raises RateLimitExceededError when over
    """

    def __init__(self, name: str, limit: int, window: int, cache=None):
        self.name = name
        self.limit = limit
        self.window = window
        self.cache = cache or self._get_cache()

    @classmethod
    def from_settings(cls, name: str, cache=None) -> 'RateLimiter':
        """Build the limiter for a named policy in settings.RATE_LIMITS."""
        policies = getattr(settings, 'RATE_LIMITS', {})
        policy = policies.get(name)
        if policy is None:
            logger.warning(f"No rate limit policy named '{name}', using default")
            policy = policies.get('default', DEFAULT_POLICY)
        return cls(name, policy['limit'], policy['window'], cache=cache)

    def _get_cache(self):
        if RATE_LIMIT_CACHE in settings.CACHES:
            return caches[RATE_LIMIT_CACHE]
        return caches['default']

    def _cache_key(self, token: str) -> str:
        return f"ratelimit:{self.name}:{token}"

    def check(self, token: str) -> RateLimitResult:
        """
        Count one request for ``token``.

        A rejected request is not counted, so a blocked client regains
        access as soon as its oldest request leaves the window.
        """
        key = self._cache_key(token)
        now = time.time()
        window_start = now - self.window

        try:
            request_times = [t for t in self.cache.get(key, []) if t > window_start]

            if len(request_times) >= self.limit:
                reset_at = math.ceil(min(request_times) + self.window)
                return RateLimitResult(allowed=False, limit=self.limit, remaining=0, reset_at=reset_at)

            request_times.append(now)
            self.cache.set(key, request_times, timeout=self.window)

            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=self.limit - len(request_times),
                reset_at=math.ceil(min(request_times) + self.window),
            )

        except Exception as e:
            logger.warning(f"Rate limit check failed: {e}")
            # On error, allow request
            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=self.limit,
                reset_at=math.ceil(now + self.window),
            )

    def hit(self, token: str) -> RateLimitResult:
        """
        Like ``check`` but raises when the request is over the limit.

        Raises:
            RateLimitExceededError: Carrying the seconds to wait
        """
        result = self.check(token)
        if not result.allowed:
            logger.info(f"Rate limit '{self.name}' exceeded for {token}")
            raise RateLimitExceededError(
                retry_after=result.retry_after,
                detail=f"Rate limit exceeded. Maximum {self.limit} requests per {self.window} seconds."
            )
        return result

    def reset(self, token: str) -> None:
        self.cache.delete(self._cache_key(token))

    def usage(self, token: str) -> int:
        """Requests counted for ``token`` in the current window."""
        window_start = time.time() - self.window
        return len([t for t in self.cache.get(self._cache_key(token), []) if t > window_start])
