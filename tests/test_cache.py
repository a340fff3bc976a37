from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import redis

from app.infra.cache import CacheBackendError
from app.infra.cache import CacheHit
from app.infra.cache import CacheMiss
from app.infra.cache import InMemoryCache
from app.infra.cache import RedisCache
from app.posts.errors import CacheUnavailableError


def test_in_memory_cache_starts_empty(cache) -> None:
    assert isinstance(cache.get("k"), CacheMiss)


def test_in_memory_cache_hit_until_expiry(cache, clock) -> None:
    cache.set("k", "v", 30)
    assert cache.get("k") == CacheHit(value="v")
    clock.advance(30)
    assert isinstance(cache.get("k"), CacheMiss)
    # 过期条目被惰性删除
    assert "k" not in cache.store


def test_in_memory_cache_delete_is_idempotent(cache) -> None:
    cache.set("k", "v", 30)
    cache.delete("k")
    cache.delete("k")
    assert isinstance(cache.get("k"), CacheMiss)


def test_in_memory_cache_rejects_non_positive_ttl() -> None:
    with pytest.raises(ValueError):
        InMemoryCache().set("k", "v", 0)


def test_redis_cache_get_maps_states() -> None:
    client = MagicMock()
    client.get.side_effect = ["v", None]
    cache = RedisCache(client=client)
    assert cache.get("k") == CacheHit(value="v")
    assert isinstance(cache.get("k"), CacheMiss)


def test_redis_cache_get_backend_error_is_not_raised() -> None:
    client = MagicMock()
    client.get.side_effect = redis.ConnectionError("down")
    read = RedisCache(client=client).get("k")
    assert isinstance(read, CacheBackendError)
    assert isinstance(read.error, redis.ConnectionError)


def test_redis_cache_set_uses_millisecond_ttl() -> None:
    client = MagicMock()
    RedisCache(client=client).set("k", "v", 30)
    client.set.assert_called_once_with("k", "v", px=30000)


def test_redis_cache_write_errors_raise_cache_unavailable() -> None:
    client = MagicMock()
    client.set.side_effect = redis.TimeoutError("slow")
    client.delete.side_effect = redis.ConnectionError("down")
    cache = RedisCache(client=client)
    with pytest.raises(CacheUnavailableError):
        cache.set("k", "v", 30)
    with pytest.raises(CacheUnavailableError):
        cache.delete("k")


def test_caches_reject_sub_millisecond_ttl() -> None:
    with pytest.raises(ValueError):
        InMemoryCache().set("k", "v", 0.0005)
    client = MagicMock()
    with pytest.raises(ValueError):
        RedisCache(client=client).set("k", "v", 0.0005)
    client.set.assert_not_called()


def test_redis_cache_smallest_ttl_is_one_millisecond() -> None:
    client = MagicMock()
    RedisCache(client=client).set("k", "v", 0.001)
    client.set.assert_called_once_with("k", "v", px=1)
