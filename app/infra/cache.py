from __future__ import annotations

"""
缓存抽象。

当前提供：
- `Cache` Protocol：定义 get/set/delete 接口
- `CacheRead`：读结果三态（Hit / Miss / BackendError）
- `InMemoryCache`：本地运行/单元测试用，带 TTL
- `RedisCache`：生产用

约定：
- `get` 不抛异常：后端出错时返回 `CacheBackendError`，调用方当作 miss 处理
- `set`/`delete` 出错时抛 `CacheUnavailableError`，由调用方决定是否吞掉
"""

import logging
import threading
import time
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass, field
from typing import Protocol

import redis

from app.posts.errors import CacheUnavailableError

logger = logging.getLogger(__name__)

# Redis PX 的最小粒度是 1ms
MIN_TTL_SECONDS = 0.001


@dataclass(frozen=True)
class CacheHit:
    value: str


@dataclass(frozen=True)
class CacheMiss:
    pass


@dataclass(frozen=True)
class CacheBackendError:
    """后端不可用。读路径上等同于 miss，只用于日志区分。"""

    error: Exception


CacheRead = CacheHit | CacheMiss | CacheBackendError


class Cache(Protocol):
    """缓存接口协议（用于依赖倒置，方便替换 Redis/Memory）。"""

    def get(self, key: str) -> CacheRead: ...

    def set(self, key: str, value: str, ttl_seconds: float) -> None: ...

    def delete(self, key: str) -> None: ...


@dataclass
class InMemoryCache:
    """
    内存缓存：单进程有效，重启即清空。

    value 与过期时间作为一个 tuple 整体写入，并由锁保护，
    读到的永远是同一次 set 写入的一对值。
    """

    store: MutableMapping[str, tuple[str, float]] = field(default_factory=dict)
    clock: Callable[[], float] = time.monotonic
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def get(self, key: str) -> CacheRead:
        with self._lock:
            entry = self.store.get(key)
            if entry is None:
                return CacheMiss()
            value, expires_at = entry
            if self.clock() >= expires_at:
                # 惰性过期
                del self.store[key]
                return CacheMiss()
            return CacheHit(value=value)

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        if ttl_seconds < MIN_TTL_SECONDS:
            raise ValueError(f"ttl_seconds must be >= {MIN_TTL_SECONDS}")
        with self._lock:
            self.store[key] = (value, self.clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self.store.pop(key, None)


class RedisCache:
    """Redis 实现：TTL 交给 Redis 的 `SET ... PX` 处理。"""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, socket_timeout: float = 5.0) -> RedisCache:
        client = redis.Redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
            health_check_interval=30,
        )
        return cls(client=client)

    def get(self, key: str) -> CacheRead:
        try:
            value = self._client.get(key)
        except redis.RedisError as exc:
            logger.warning(f"Redis GET failed: key={key}, error={exc}")
            return CacheBackendError(error=exc)
        if value is None:
            return CacheMiss()
        return CacheHit(value=str(value))

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        if ttl_seconds < MIN_TTL_SECONDS:
            raise ValueError(f"ttl_seconds must be >= {MIN_TTL_SECONDS}")
        try:
            # 用 PX 保留亚秒精度
            self._client.set(key, value, px=max(1, round(ttl_seconds * 1000)))
        except redis.RedisError as exc:
            raise CacheUnavailableError(f"Redis SET failed for {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as exc:
            raise CacheUnavailableError(f"Redis DEL failed for {key}: {exc}") from exc

    def close(self) -> None:
        self._client.close()
