from django.core.cache import cache
from django.test import TestCase, override_settings

from apps.core.exceptions import RateLimited
from apps.core.rate_limit import CacheRateLimiter, enforce


class CacheRateLimiterTest(TestCase):

    def setUp(self):
        cache.clear()
        self.limiter = CacheRateLimiter(prefix="test")

    def test_allows_up_to_limit(self):
        results = [self.limiter.check("ip:1", limit_points=3, window_seconds=60) for _ in range(3)]
        self.assertTrue(all(r.allowed for r in results))
        self.assertEqual([r.remaining for r in results], [2, 1, 0])

        denied = self.limiter.check("ip:1", limit_points=3, window_seconds=60)
        self.assertFalse(denied.allowed)
        self.assertEqual(denied.retry_after, 60)

    def test_block_outlives_window(self):
        for _ in range(2):
            self.limiter.check("ip:2", limit_points=1, window_seconds=60, block_seconds=3600)

        result = self.limiter.check("ip:2", limit_points=1, window_seconds=60, block_seconds=3600)
        self.assertFalse(result.allowed)
        self.assertGreater(result.retry_after, 3000)

    def test_identities_are_independent(self):
        self.limiter.check("ip:3", limit_points=1, window_seconds=60)
        self.assertFalse(self.limiter.check("ip:3", limit_points=1, window_seconds=60).allowed)
        self.assertTrue(self.limiter.check("ip:4", limit_points=1, window_seconds=60).allowed)

    def test_reset(self):
        for _ in range(2):
            self.limiter.check("ip:5", limit_points=1, window_seconds=60)
        self.limiter.reset("ip:5")
        self.assertTrue(self.limiter.check("ip:5", limit_points=1, window_seconds=60).allowed)


class EnforceTest(TestCase):

    def setUp(self):
        cache.clear()

    def test_raises_rate_limited(self):
        enforce("user:1", limit_points=1, window_seconds=30)
        with self.assertRaises(RateLimited) as ctx:
            enforce("user:1", limit_points=1, window_seconds=30)
        self.assertEqual(ctx.exception.retry_after, 30)
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertEqual(ctx.exception.details["retry_after"], 30)

    @override_settings(RATE_LIMIT_ENABLED=False)
    def test_disabled(self):
        for _ in range(5):
            self.assertTrue(enforce("user:2", limit_points=1, window_seconds=30).allowed)
