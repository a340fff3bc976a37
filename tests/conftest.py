from __future__ import annotations

import threading
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import pytest

from app.infra.cache import CacheBackendError
from app.infra.cache import CacheRead
from app.infra.cache import InMemoryCache
from app.posts.errors import CacheUnavailableError
from app.posts.errors import StoreUnavailableError
from app.posts.models import Post
from app.posts.service import PostsService


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryPostStore:
    """内存版 store：记录调用次数，可切换为失败模式。"""

    def __init__(self, created_at: datetime | None = None) -> None:
        self.rows: list[Post] = []
        self.list_calls = 0
        self.insert_calls = 0
        self.fail = False
        # 固定时间戳：所有 post created_at 相同，排序完全依赖 id
        self._created_at = created_at or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def list_posts(self, fields: Sequence[str]) -> list[dict[str, Any]]:
        with self._lock:
            self.list_calls += 1
            if self.fail:
                raise StoreUnavailableError("store down")
            ordered = sorted(self.rows, key=lambda p: (p.created_at, p.id), reverse=True)
            return [{name: getattr(post, name) for name in fields} for post in ordered]

    def insert_post(self, title: str, body: str | None) -> Post:
        with self._lock:
            self.insert_calls += 1
            if self.fail:
                raise StoreUnavailableError("store down")
            post = Post(id=len(self.rows) + 1, title=title, body=body, created_at=self._created_at)
            self.rows.append(post)
            return post


class FailingCache:
    """模拟缓存后端不可达。"""

    def __init__(self) -> None:
        self.get_calls = 0
        self.set_calls = 0
        self.delete_calls = 0

    def get(self, key: str) -> CacheRead:
        self.get_calls += 1
        return CacheBackendError(error=ConnectionError("cache unreachable"))

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        self.set_calls += 1
        raise CacheUnavailableError("cache unreachable")

    def delete(self, key: str) -> None:
        self.delete_calls += 1
        raise CacheUnavailableError("cache unreachable")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryPostStore:
    return InMemoryPostStore()


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryCache:
    return InMemoryCache(clock=clock)


@pytest.fixture
def failing_cache() -> FailingCache:
    return FailingCache()


@pytest.fixture
def service(store: InMemoryPostStore, cache: InMemoryCache) -> PostsService:
    return PostsService(store=store, cache=cache, ttl_seconds=30)
