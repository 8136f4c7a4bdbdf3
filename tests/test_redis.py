from unittest import IsolatedAsyncioTestCase
from unittest.mock import patch

from fakeredis import aioredis as fake_aioredis

from pickup_svc.core import redis as redis_mod
from pickup_svc.core.config import Settings
from pickup_svc.core.redis import ConsumedTokenRegistry, allow_request, ping_redis


class RedisHelpersTests(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.fake = fake_aioredis.FakeRedis(decode_responses=True)
        self.settings = Settings(_env_file=None, rl_enabled=True, rl_max_reqs=2, rl_window_seconds=60)
        patcher_r = patch.object(redis_mod, "_r", self.fake)
        patcher_s = patch.object(redis_mod, "_settings", self.settings)
        patcher_r.start()
        patcher_s.start()
        self.addCleanup(patcher_r.stop)
        self.addCleanup(patcher_s.stop)

    async def asyncTearDown(self):
        await self.fake.aclose()

    async def test_ping(self):
        self.assertTrue(await ping_redis())

    async def test_fixed_window_limit(self):
        self.assertTrue(await allow_request("10.0.0.1", "validator.scan"))
        self.assertTrue(await allow_request("10.0.0.1", "validator.scan"))
        self.assertFalse(await allow_request("10.0.0.1", "validator.scan"))
        # separate counter per ip
        self.assertTrue(await allow_request("10.0.0.2", "validator.scan"))
        self.assertGreater(await self.fake.ttl("rl:validator.scan:10.0.0.1"), 0)

    async def test_limiter_disabled(self):
        self.settings.rl_enabled = False
        for _ in range(5):
            self.assertTrue(await allow_request("10.0.0.1", "validator.scan"))

    async def test_consumed_registry_uses_shared_client(self):
        registry = ConsumedTokenRegistry()
        self.assertTrue(await registry.consume("abc", 60))
        self.assertFalse(await registry.consume("abc", 60))
        self.assertEqual(await self.fake.get("pickup:consumed:abc"), "1")

    async def test_consumed_key_expires_with_token(self):
        registry = ConsumedTokenRegistry(self.fake, prefix="t")
        await registry.consume("abc", 0)
        ttl = await self.fake.ttl("t:abc")
        self.assertTrue(0 < ttl <= 1)
