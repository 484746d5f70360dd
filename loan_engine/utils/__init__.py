from loan_engine.utils.redis_client import close_redis_client, get_redis_client, redis_key

__all__ = [
    "close_redis_client",
    "get_redis_client",
    "redis_key",
]
