"""
Posts Cache Layer（cache-aside 核心）。

读路径：
- cache hit -> 直接返回，不访问 store
- miss / 过期 / 后端错误 / 缓存内容无法解析 -> 查 store，写回 cache（带 TTL），返回

写路径：
- 先校验 title（不触碰 store/cache）
- 插入 store（store 才是数据源）
- 无条件失效 cache；失效失败只记日志，不影响返回（fail-open）

一致性：store 与 cache 不在同一事务里。读与写并发时，读可能把写之前的快照
写回 cache，最长陈旧 TTL 秒。
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError

from app.infra.cache import Cache
from app.infra.cache import CacheBackendError
from app.infra.cache import CacheHit
from app.infra.cache import MIN_TTL_SECONDS
from app.posts.errors import CacheUnavailableError
from app.posts.errors import PostValidationError
from app.posts.models import DEFAULT_LIST_FIELDS
from app.posts.models import Post
from app.posts.models import validate_list_fields
from app.storage.pg import PostStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30.0

_POST_LIST_ADAPTER: TypeAdapter[list[dict[str, Any]]] = TypeAdapter(list[dict[str, Any]])


def build_posts_cache_key(fields: Sequence[str]) -> str:
    """唯一的缓存 key：全部 posts，按投影字段区分，newest first。"""
    return f"posts:all:{','.join(fields)}"


class PostsService:
    """持有唯一的 "all posts" 缓存条目。启动时创建一次，注入到路由里。"""

    def __init__(
        self,
        store: PostStore,
        cache: Cache,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        list_fields: tuple[str, ...] = DEFAULT_LIST_FIELDS,
    ) -> None:
        if ttl_seconds < MIN_TTL_SECONDS:
            raise ValueError(f"ttl_seconds must be >= {MIN_TTL_SECONDS}")
        self._store = store
        self._cache = cache
        self._ttl_seconds = ttl_seconds
        self._list_fields = validate_list_fields(list_fields)
        self._cache_key = build_posts_cache_key(self._list_fields)

    @property
    def cache_key(self) -> str:
        return self._cache_key

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def get_posts(self) -> list[dict[str, Any]]:
        """
        返回全部 posts 的投影（默认 `{id, title}`），newest first。

        - store 失败抛 `StoreUnavailableError`，此时 cache 保持原状
        - cache 的任何故障都不会让请求失败
        """
        read = self._cache.get(self._cache_key)
        if isinstance(read, CacheHit):
            cached = _decode_posts(read.value)
            if cached is not None:
                logger.debug(f"Posts cache hit: key={self._cache_key}")
                return cached
            logger.warning(f"Discarding undecodable posts cache value: key={self._cache_key}")
        elif isinstance(read, CacheBackendError):
            logger.warning(f"Posts cache unavailable, falling back to store: {read.error}")
        else:
            logger.info(f"Posts cache miss: key={self._cache_key}")

        rows = self._store.list_posts(self._list_fields)
        serialized = _POST_LIST_ADAPTER.dump_json(rows).decode("utf-8")
        try:
            self._cache.set(self._cache_key, serialized, self._ttl_seconds)
        except CacheUnavailableError as exc:
            logger.warning(f"Failed to populate posts cache: {exc}")
        # hit 与 miss 返回同一种形态（都从 JSON 解出来）
        return _POST_LIST_ADAPTER.validate_json(serialized)

    def create_post(self, title: str | None, body: str | None) -> Post:
        if not title:
            raise PostValidationError("Title is required")

        post = self._store.insert_post(title=title, body=body)

        error = self.invalidate()
        if error is not None:
            # fail-open：store 已提交，cache 最多陈旧 TTL 秒
            logger.warning(f"Posts cache invalidation failed after creating post {post.id}: {error}")
        return post

    def invalidate(self) -> CacheUnavailableError | None:
        """删除列表缓存；失败时返回错误而不是抛出，由调用方决定如何处理。"""
        try:
            self._cache.delete(self._cache_key)
        except CacheUnavailableError as exc:
            return exc
        return None


def _decode_posts(value: str) -> list[dict[str, Any]] | None:
    try:
        return _POST_LIST_ADAPTER.validate_json(value)
    except ValidationError:
        return None
