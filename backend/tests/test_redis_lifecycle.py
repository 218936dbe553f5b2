"""Lifecycle of the shared Redis client behind the authorization cache.

No server is needed: the pool opens connections lazily and these tests never
issue a command.
"""

from types import SimpleNamespace

import pytest

from community_authz.infrastructure import redis

REDIS_URL = "redis://localhost:6379/15"


@pytest.fixture(autouse=True)
def reset_redis_state():
    redis._reset_for_testing()
    yield
    redis._reset_for_testing()


@pytest.mark.anyio
async def test_init_redis_is_idempotent() -> None:
    client1 = await redis.init_redis(REDIS_URL)
    client2 = await redis.init_redis(REDIS_URL)

    assert client1 is client2
    assert redis._redis_state == redis._RedisLifecycleState.INITIALIZED
    await redis.close_redis()


@pytest.mark.anyio
async def test_close_redis_is_idempotent() -> None:
    await redis.init_redis(REDIS_URL)

    await redis.close_redis()
    await redis.close_redis()

    assert redis._redis_state == redis._RedisLifecycleState.CLOSED
    assert redis._redis_client is None


@pytest.mark.anyio
async def test_close_without_init_is_safe() -> None:
    await redis.close_redis()

    assert redis._redis_state == redis._RedisLifecycleState.UNINITIALIZED


@pytest.mark.anyio
async def test_get_redis_requires_initialized_client() -> None:
    with pytest.raises(RuntimeError, match="not initialized"):
        redis.get_redis()

    client = await redis.init_redis(REDIS_URL)
    assert redis.get_redis() is client

    await redis.close_redis()
    with pytest.raises(RuntimeError, match="not initialized"):
        redis.get_redis()


@pytest.mark.anyio
async def test_reinit_after_close_creates_new_client() -> None:
    first = await redis.init_redis(REDIS_URL)
    await redis.close_redis()

    second = await redis.init_redis(REDIS_URL)

    assert second is not first
    assert redis.get_redis() is second
    await redis.close_redis()


def test_authz_cache_dependency_disabled_without_redis(monkeypatch: pytest.MonkeyPatch) -> None:
    from community_authz import dependencies

    monkeypatch.setattr(
        dependencies,
        "settings",
        SimpleNamespace(authz_cache_enabled=True, authz_cache_ttl_seconds=30),
    )
    assert dependencies.get_authz_cache() is None


@pytest.mark.anyio
async def test_authz_cache_dependency_uses_initialized_client(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    from community_authz import dependencies
    from community_authz.infrastructure.authz_cache import RedisAuthorizationCache

    monkeypatch.setattr(
        dependencies,
        "settings",
        SimpleNamespace(authz_cache_enabled=True, authz_cache_ttl_seconds=30),
    )
    await redis.init_redis(REDIS_URL)

    assert isinstance(dependencies.get_authz_cache(), RedisAuthorizationCache)
    await redis.close_redis()
