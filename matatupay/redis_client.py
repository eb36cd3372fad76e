import redis.asyncio as aioredis
from matatupay.config import get_settings

settings = get_settings()

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=100,
        )
    return _redis_pool


async def close_redis() -> None:
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None


# ---------------------------------------------------------------------------
# Short-lived locks
# ---------------------------------------------------------------------------

async def acquire_lock(redis: aioredis.Redis, key: str, value: str, ttl_ms: int) -> bool:
    """SET NX with expiry. Returns False if someone else holds the key."""
    acquired = await redis.set(key, value, nx=True, px=ttl_ms)
    return bool(acquired)


async def release_lock(redis: aioredis.Redis, key: str, value: str) -> bool:
    """Delete the lock only if it still holds ``value``. Returns False otherwise."""
    if await redis.get(key) != value:
        return False
    await redis.delete(key)
    return True


# ---------------------------------------------------------------------------
# Cache helpers
# ---------------------------------------------------------------------------

async def cache_set(redis: aioredis.Redis, key: str, value: str, ttl: int) -> None:
    await redis.setex(key, ttl, value)


async def cache_get(redis: aioredis.Redis, key: str) -> str | None:
    return await redis.get(key)

