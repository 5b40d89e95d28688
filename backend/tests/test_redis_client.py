from app.core.config import settings
from app.infrastructure.cache.redis_client import get_redis_client


def test_redis_client_bounds_connect_and_socket_waits():
    client = get_redis_client()

    options = client.connection_pool.connection_kwargs
    assert options["socket_connect_timeout"] == settings.redis_socket_connect_timeout_seconds
    assert options["socket_timeout"] == settings.redis_socket_timeout_seconds
    assert options["decode_responses"] is True
