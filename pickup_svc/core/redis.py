from __future__ import annotations
import logging
import redis.asyncio as redis
from .config import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()
_r: redis.Redis | None = None

def get_redis() -> redis.Redis:
    global _r
    if _r is None:
        _r = redis.from_url(_settings.redis_url, decode_responses=True)
    return _r

async def ping_redis() -> bool:
    try:
        r = get_redis()
        pong = await r.ping()
        return bool(pong)
    except Exception:
        logger.warning("redis ping failed", exc_info=True)
        return False


class ConsumedTokenRegistry:
    """
    Anti-replay set for scanned pickup credentials.
    consume() returns True the first time a key is seen within ttl, False on replay.
    """

    def __init__(self, client: redis.Redis | None = None, prefix: str = "pickup:consumed"):
        self._client = client
        self._prefix = prefix

    @property
    def client(self) -> redis.Redis:
        return self._client or get_redis()

    async def consume(self, key: str, ttl_seconds: int) -> bool:
        # SET if Not eXists with EXpire; first caller wins
        ok = await self.client.set(f"{self._prefix}:{key}", "1", ex=max(ttl_seconds, 1), nx=True)
        return bool(ok)

    async def is_consumed(self, key: str) -> bool:
        return bool(await self.client.exists(f"{self._prefix}:{key}"))


# ---- Simple fixed-window rate limit per IP/route ----
async def allow_request(ip: str, route_key: str) -> bool:
    """
    Fixed window: increment a counter key; allow if <= max.
    """
    if not _settings.rl_enabled:
        return True
    r = get_redis()
    key = f"rl:{route_key}:{ip}"
    pipe = r.pipeline()
    pipe.incr(key)
    pipe.expire(key, _settings.rl_window_seconds)
    count, _ = await pipe.execute()
    return int(count) <= _settings.rl_max_reqs
