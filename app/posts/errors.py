from __future__ import annotations

"""
posts 领域的错误类型。

约定：
- 校验失败 -> 400，不触碰 store/cache
- store 不可用 -> 500，不重试（重试策略属于调用方/LB）
- cache 不可用 -> 永远不对外暴露（读路径降级为 miss，写路径记录日志后丢弃）
"""


class PostValidationError(ValueError):
    """调用方输入不满足前置条件（例如 title 为空）。"""

    pass


class StoreUnavailableError(RuntimeError):
    """Postgres 连不上，或查询/插入失败。"""

    pass


class CacheUnavailableError(RuntimeError):
    """缓存后端（Redis 等）不可用。"""

    pass
