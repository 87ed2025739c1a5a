"""
Rate/Abuse Guard - bounds attempts per caller identity.

Backed by Django's cache framework, so production deployments share
counters through Redis while development and tests use local memory.

Usage:
    from apps.core.rate_limit import enforce

    enforce("invite-validate:203.0.113.7", limit_points=10, window_seconds=900)

Fixed-window counting with an optional block period once the limit is hit.
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.core.cache import caches

from .exceptions import RateLimited

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[int] = None


class RateLimiterInterface(ABC):
    """
    Abstract interface for the abuse guard.

    Implementations:
    - CacheRateLimiter: Django cache (Redis in production)
    """

    @abstractmethod
    def check(
        self,
        identity_key: str,
        limit_points: int,
        window_seconds: int,
        block_seconds: Optional[int] = None,
    ) -> RateLimitResult:
        """
        Count one attempt for identity_key and decide allow/deny.

        Args:
            identity_key: Caller identity (IP, user id, token prefix...)
            limit_points: Attempts allowed per window
            window_seconds: Window length
            block_seconds: How long to deny after the limit is exceeded
                (defaults to window_seconds)
        """
        pass

    @abstractmethod
    def reset(self, identity_key: str) -> None:
        pass


class CacheRateLimiter(RateLimiterInterface):

    def __init__(self, prefix: str = "ratelimit", cache_alias: str = "default"):
        self.prefix = prefix
        self.cache_alias = cache_alias

    @property
    def cache(self):
        return caches[self.cache_alias]

    def _keys(self, identity_key: str):
        key = f"{self.prefix}:{identity_key}"
        return key, f"{key}:blocked"

    def check(self, identity_key, limit_points, window_seconds, block_seconds=None):
        key, block_key = self._keys(identity_key)
        now = time.time()

        blocked_until = self.cache.get(block_key)
        if blocked_until is not None:
            retry_after = max(1, int(blocked_until - now) + 1)
            return RateLimitResult(allowed=False, limit=limit_points, remaining=0, retry_after=retry_after)

        # add() only creates the counter if missing, keeping the window start fixed
        self.cache.add(key, 0, timeout=window_seconds)
        try:
            count = self.cache.incr(key)
        except ValueError:
            # Counter expired between add() and incr()
            self.cache.set(key, 1, timeout=window_seconds)
            count = 1

        if count > limit_points:
            block = block_seconds or window_seconds
            self.cache.set(block_key, now + block, timeout=block)
            return RateLimitResult(allowed=False, limit=limit_points, remaining=0, retry_after=block)

        return RateLimitResult(allowed=True, limit=limit_points, remaining=limit_points - count)

    def reset(self, identity_key):
        self.cache.delete_many(list(self._keys(identity_key)))


_rate_limiter: Optional[RateLimiterInterface] = None


def get_rate_limiter() -> RateLimiterInterface:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = CacheRateLimiter(cache_alias=getattr(settings, 'RATE_LIMIT_CACHE_ALIAS', 'default'))
    return _rate_limiter


def enforce(
    identity_key: str,
    limit_points: int,
    window_seconds: int,
    block_seconds: Optional[int] = None,
) -> RateLimitResult:
    """
    Check the guard and raise RateLimited when the caller is over the limit.

    Disabled entirely when settings.RATE_LIMIT_ENABLED is False.
    """
    if not getattr(settings, 'RATE_LIMIT_ENABLED', True):
        return RateLimitResult(allowed=True, limit=limit_points, remaining=limit_points)

    result = get_rate_limiter().check(identity_key, limit_points, window_seconds, block_seconds)
    if not result.allowed:
        logger.warning(f"Rate limit exceeded for {identity_key} (limit={limit_points}/{window_seconds}s)")
        raise RateLimited(retry_after=result.retry_after or window_seconds)
    return result
