"""
FastAPI 服务入口。

这里做三件事：
- 加载配置（严格校验环境变量）
- 组装外部依赖（Postgres 连接池 / 缓存后端 / PostsService）
- 装配路由（health + posts）

注意：
- 缓存逻辑不写在这里（由 `posts/service.py` 负责）
- 连接池在 lifespan 里 open/close，不在 import 时连接数据库
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import anyio
import uvicorn
from fastapi import FastAPI

from app.config import AppConfig
from app.config import load_config_from_env
from app.infra.cache import Cache
from app.infra.cache import InMemoryCache
from app.infra.cache import RedisCache
from app.posts.router import build_posts_router
from app.posts.service import PostsService
from app.storage.pg import PgPostStore

logger = logging.getLogger(__name__)


def create_app(
    service: PostsService,
    on_startup: Callable[[], None] | None = None,
    on_shutdown: Callable[[], None] | None = None,
) -> FastAPI:
    """用已组装好的 service 创建 app（测试直接注入内存实现）。"""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if on_startup is not None:
            await anyio.to_thread.run_sync(on_startup)
        try:
            yield
        finally:
            if on_shutdown is not None:
                await anyio.to_thread.run_sync(on_shutdown)

    app = FastAPI(title="Posts API", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """健康检查：用于 k8s / LB 探活。"""
        return {"status": "ok"}

    app.include_router(build_posts_router(service=service))
    return app


def build_cache(config: AppConfig) -> Cache:
    if config.cache.redis_url:
        return RedisCache.from_url(config.cache.redis_url)
    logger.info("REDIS_URL not set, using in-process posts cache")
    return InMemoryCache()


def close_resources(store: PgPostStore, cache: Cache) -> None:
    """关闭连接池；即使连接池关闭失败，也要关闭 Redis 连接。"""
    try:
        store.close()
    finally:
        if isinstance(cache, RedisCache):
            cache.close()


def build_app(config: AppConfig | None = None) -> FastAPI:
    """创建并返回 FastAPI app（便于测试/复用）。"""

    # 1) 配置：缺失会直接抛错，启动失败（这是期望行为）
    if config is None:
        config = load_config_from_env(os.environ)

    # 2) 有界连接池：池耗尽表现为延迟升高或 StoreUnavailableError
    store = PgPostStore.from_dsn(
        dsn=config.database.dsn,
        min_size=config.database.pool_min_size,
        max_size=config.database.pool_max_size,
        timeout=config.database.pool_timeout_seconds,
    )

    # 3) 缓存后端 + 唯一的 PostsService 实例
    cache = build_cache(config)
    service = PostsService(
        store=store,
        cache=cache,
        ttl_seconds=config.cache.ttl_seconds,
        list_fields=config.cache.list_fields,
    )

    def startup() -> None:
        store.open()
        store.ensure_schema()
        logger.info(f"Posts API started: cache={type(cache).__name__}, ttl={service.ttl_seconds}s")

    def shutdown() -> None:
        close_resources(store=store, cache=cache)
        logger.info("Posts API stopped")

    return create_app(service=service, on_startup=startup, on_shutdown=shutdown)


def main() -> None:
    config = load_config_from_env(os.environ)
    logging.basicConfig(
        level=config.server.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(build_app(config), host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
