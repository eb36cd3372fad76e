import json
from typing import Optional

from fastapi import Response
from fastapi.responses import JSONResponse

from matatupay.config import get_settings
from matatupay.redis_client import get_redis, cache_get, cache_set

settings = get_settings()


def _cache_key(scope: str, key: str) -> str:
    return f"idempotency:{scope}:{key}"


async def check_idempotency(scope: str, key: Optional[str]) -> Optional[Response]:
    """
    Returns the stored Response if this Idempotency-Key was already used for
    the given scope (usually the acting user), otherwise None.
    """
    if not key:
        return None

    redis = await get_redis()
    cached = await cache_get(redis, _cache_key(scope, key))
    if cached:
        data = json.loads(cached)
        return JSONResponse(
            content=data["body"],
            status_code=data["status_code"],
            headers={"X-Idempotency-Replay": "true"},
        )
    return None


async def store_idempotency_result(scope: str, key: str, status_code: int, body: dict) -> None:
    """Persist the response for the given idempotency key."""
    redis = await get_redis()
    await cache_set(
        redis,
        _cache_key(scope, key),
        json.dumps({"status_code": status_code, "body": body}),
        ttl=settings.idempotency_ttl_seconds,
    )
