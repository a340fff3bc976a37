"""
应用配置加载。

设计目标：
- **严格**：缺少必要环境变量就直接报错（避免“看起来跑了其实没配置好”）
- **类型安全**：使用 Pydantic 校验端口/TTL/连接池大小等，减少运行时踩坑
- **可测试**：核心加载函数接收 `environ` 显式输入，便于单元测试
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, Field, model_validator

from app.infra.cache import MIN_TTL_SECONDS
from app.posts.models import DEFAULT_LIST_FIELDS
from app.posts.models import validate_list_fields


class DatabaseConfig(BaseModel):
    """Postgres 连接与连接池配置。"""

    dsn: str = Field(min_length=1)
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=10, ge=1)
    pool_timeout_seconds: float = Field(default=5.0, gt=0)

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> DatabaseConfig:
        if self.pool_max_size < self.pool_min_size:
            raise ValueError("pool_max_size must be >= pool_min_size")
        return self


class CacheConfig(BaseModel):
    """列表缓存配置。`redis_url` 为空时使用进程内缓存。"""

    redis_url: str | None = None
    ttl_seconds: float = Field(default=30.0, ge=MIN_TTL_SECONDS)
    list_fields: tuple[str, ...] = DEFAULT_LIST_FIELDS

    @model_validator(mode="after")
    def _check_list_fields(self) -> CacheConfig:
        validate_list_fields(self.list_fields)
        return self


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    log_level: str = "INFO"


class AppConfig(BaseModel):
    database: DatabaseConfig
    cache: CacheConfig
    server: ServerConfig


def load_config_from_env(environ: Mapping[str, str]) -> AppConfig:
    """
    从环境变量加载并校验配置。

    - **输入**：`environ`（例如 `os.environ`）
    - **输出**：`AppConfig`
    - **失败**：缺失/非法则抛 `ValueError`（Pydantic 的 ValidationError 也是 ValueError）
    """

    dsn = environ.get("DATABASE_URL", "")
    if not dsn:
        raise ValueError("Missing required env vars: DATABASE_URL")

    database = DatabaseConfig.model_validate(
        _drop_unset(
            {
                "dsn": dsn,
                "pool_min_size": environ.get("DB_POOL_MIN_SIZE"),
                "pool_max_size": environ.get("DB_POOL_MAX_SIZE"),
                "pool_timeout_seconds": environ.get("DB_POOL_TIMEOUT_SECONDS"),
            }
        )
    )

    raw_fields = environ.get("POSTS_LIST_FIELDS")
    cache = CacheConfig.model_validate(
        _drop_unset(
            {
                "redis_url": environ.get("REDIS_URL"),
                "ttl_seconds": environ.get("POSTS_CACHE_TTL_SECONDS"),
                "list_fields": _split_fields(raw_fields) if raw_fields else None,
            }
        )
    )

    server = ServerConfig.model_validate(
        _drop_unset(
            {
                "host": environ.get("HOST"),
                "port": environ.get("PORT"),
                "log_level": environ.get("LOG_LEVEL"),
            }
        )
    )
    return AppConfig(database=database, cache=cache, server=server)


def _drop_unset(values: dict[str, object]) -> dict[str, object]:
    # 空字符串视为未设置，走默认值
    return {key: value for key, value in values.items() if value is not None and value != ""}


def _split_fields(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())
