from uuid import uuid4

from redis import Redis

from app.core.config import settings
from app.infrastructure.observability.metrics import measure_redis

_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


def get_redis_client() -> Redis:
    return Redis.from_url(
        settings.cache_redis_url,
        decode_responses=True,
        socket_connect_timeout=settings.redis_socket_connect_timeout_seconds,
        socket_timeout=settings.redis_socket_timeout_seconds,
    )


def acquire_lock(redis_client: Redis, *, key: str, ttl_seconds: int) -> str | None:
    token = str(uuid4())
    with measure_redis("lock_acquire"):
        acquired = redis_client.set(key, token, nx=True, ex=ttl_seconds)
    if not acquired:
        return None
    return token


def release_lock(redis_client: Redis, *, key: str, token: str) -> None:
    with measure_redis("lock_release"):
        redis_client.eval(_RELEASE_LOCK_SCRIPT, 1, key, token)
