"""
/posts HTTP 接入层。

职责：
- 解析请求体 -> Pydantic schema（非法 JSON/类型错误 -> 400）
- 把阻塞调用（psycopg/redis）放到 worker 线程执行
- 领域错误 -> HTTP 状态码（校验 400，store 500）
"""

from __future__ import annotations

import json
import logging
from typing import Any

import anyio
from fastapi import APIRouter
from fastapi import HTTPException
from fastapi import Request
from pydantic import ValidationError

from app.posts.errors import PostValidationError
from app.posts.errors import StoreUnavailableError
from app.posts.models import Post
from app.posts.models import PostCreate
from app.posts.service import PostsService

logger = logging.getLogger(__name__)


def build_posts_router(service: PostsService) -> APIRouter:
    router = APIRouter()

    @router.get("/posts")
    async def list_posts() -> list[dict[str, Any]]:
        try:
            return await anyio.to_thread.run_sync(service.get_posts)
        except StoreUnavailableError as exc:
            logger.error(f"GET /posts failed: {exc}")
            raise HTTPException(status_code=500, detail="Internal Server Error") from exc

    @router.post("/posts", status_code=201)
    async def create_post(request: Request) -> Post:
        body = await request.body()
        try:
            payload = PostCreate.model_validate(json.loads(body.decode("utf-8")))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON payload") from exc
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail="Invalid post payload") from exc

        try:
            return await anyio.to_thread.run_sync(service.create_post, payload.title, payload.body)
        except PostValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except StoreUnavailableError as exc:
            logger.error(f"POST /posts failed: {exc}")
            raise HTTPException(status_code=500, detail="Internal Server Error") from exc

    return router
