"""
posts 领域模型（Pydantic）。

- `Post`：持久化记录（id/created_at 由数据库生成）
- `PostCreate`：POST /posts 的请求体；title 的非空校验放在 service 层
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

# 列表接口默认只返回 id + title（不含 body）
DEFAULT_LIST_FIELDS: tuple[str, ...] = ("id", "title")
REQUIRED_LIST_FIELDS: tuple[str, ...] = ("id", "title")


class Post(BaseModel):
    id: int
    title: str
    body: str | None = None
    created_at: datetime


class PostCreate(BaseModel):
    title: str | None = None
    body: str | None = None


def validate_list_fields(fields: tuple[str, ...]) -> tuple[str, ...]:
    """校验列表投影：只能是 Post 的字段，且必须包含 id/title。"""
    if not fields:
        raise ValueError("list fields must not be empty")
    unknown = [name for name in fields if name not in Post.model_fields]
    if unknown:
        raise ValueError(f"Unknown post fields: {', '.join(unknown)}")
    missing = [name for name in REQUIRED_LIST_FIELDS if name not in fields]
    if missing:
        raise ValueError(f"List fields must include: {', '.join(missing)}")
    if len(set(fields)) != len(fields):
        raise ValueError("list fields must not contain duplicates")
    return fields
