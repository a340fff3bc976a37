from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from app.posts.errors import StoreUnavailableError
from app.posts.models import Post

logger = logging.getLogger(__name__)


class PostStore(Protocol):
    """持久化存储接口（Postgres 实现见 `PgPostStore`，测试可替换为内存实现）。"""

    def list_posts(self, fields: Sequence[str]) -> list[dict[str, Any]]: ...

    def insert_post(self, title: str, body: str | None) -> Post: ...


class PgPostStore:
    """Postgres 连接器（基于 psycopg_pool 的有界连接池）。"""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    @classmethod
    def from_dsn(cls, dsn: str, min_size: int, max_size: int, timeout: float) -> PgPostStore:
        # open=False：由 app lifespan 显式 open/close
        pool = ConnectionPool(conninfo=dsn, min_size=min_size, max_size=max_size, timeout=timeout, open=False)
        return cls(pool=pool)

    def open(self) -> None:
        self._pool.open(wait=False)

    def close(self) -> None:
        self._pool.close()

    def ensure_schema(self) -> None:
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS posts (
                            id SERIAL PRIMARY KEY,
                            title TEXT NOT NULL,
                            body TEXT,
                            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
                        )
                        """
                    )
                    cur.execute(
                        """
                        CREATE INDEX IF NOT EXISTS idx_posts_created_at
                        ON posts (created_at DESC, id DESC)
                        """
                    )
        except psycopg.Error as exc:
            logger.error(f"Failed to ensure posts schema: {exc}")
            raise StoreUnavailableError(f"Failed to ensure posts schema: {exc}") from exc

    def list_posts(self, fields: Sequence[str]) -> list[dict[str, Any]]:
        """全部 posts，按 created_at 倒序（同一时刻按 id 倒序，即插入顺序）。"""
        if not fields:
            raise ValueError("fields must not be empty")
        query = sql.SQL("SELECT {fields} FROM posts ORDER BY created_at DESC, id DESC").format(
            fields=sql.SQL(", ").join(sql.Identifier(name) for name in fields),
        )
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(query)
                    rows = cur.fetchall()
        except psycopg.Error as exc:
            logger.error(f"Error listing posts: {exc}")
            raise StoreUnavailableError(f"Error listing posts: {exc}") from exc
        return [dict(row) for row in rows]

    def insert_post(self, title: str, body: str | None) -> Post:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        INSERT INTO posts (title, body)
                        VALUES (%s, %s)
                        RETURNING id, title, body, created_at
                        """,
                        (title, body),
                    )
                    row = cur.fetchone()
        except psycopg.Error as exc:
            logger.error(f"Error inserting post: {exc}")
            raise StoreUnavailableError(f"Error inserting post: {exc}") from exc
        if row is None:
            raise StoreUnavailableError("INSERT ... RETURNING produced no row")
        return Post.model_validate(row)
