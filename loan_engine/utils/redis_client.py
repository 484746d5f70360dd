from functools import lru_cache

from redis.asyncio import Redis

from loan_engine.core.settings import settings


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=True)


def redis_key(*parts) -> str:
    return ":".join(str(part) for part in parts)


async def close_redis_client() -> None:
    if get_redis_client.cache_info().currsize == 0:
        return
    await get_redis_client().aclose()
    get_redis_client.cache_clear()
