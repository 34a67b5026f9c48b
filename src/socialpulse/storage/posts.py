"""Post store: append-only social posts keyed by upstream message ID."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import asyncpg

from socialpulse.core.exceptions import DuplicateRecordError
from socialpulse.core.logging import get_logger
from socialpulse.processing.models import DailyVolume, Post

if TYPE_CHECKING:
    from socialpulse.storage.database import Database

logger = get_logger(__name__)

_POST_COLUMNS = "id, symbol, username, body, likes_count, user_followers_count, created_at, ingested_at"


def _row_to_post(row: asyncpg.Record) -> Post:
    return Post.model_validate(dict(row))


class PostStore:
    """Persistence for ``stocktwits_posts``."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def exists(self, post_id: int) -> bool:
        """Check whether a post ID has already been stored."""
        found = await self.db.fetchval(
            "SELECT EXISTS(SELECT 1 FROM stocktwits_posts WHERE id = $1)", post_id
        )
        return bool(found)

    async def insert(self, post: Post) -> None:
        """Insert a new post.

        Raises:
            DuplicateRecordError: If another writer stored the same ID first
        """
        query = """
            INSERT INTO stocktwits_posts (
                id, symbol, username, body, likes_count, user_followers_count, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
        """
        try:
            await self.db.execute(
                query,
                post.id,
                post.symbol,
                post.username,
                post.body,
                post.likes_count,
                post.user_followers_count,
                post.created_at,
            )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateRecordError(f"Post {post.id} already stored") from e

    async def list_page(self, symbol: str, page: int = 1, limit: int = 50) -> tuple[list[Post], int]:
        """Newest-first page of posts plus the total count for the symbol."""
        page = max(page, 1)
        limit = max(min(limit, 200), 1)
        rows = await self.db.fetch(
            f"""
            SELECT {_POST_COLUMNS}
            FROM stocktwits_posts
            WHERE symbol = $1
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
            """,
            symbol,
            limit,
            (page - 1) * limit,
        )
        total = await self.db.fetchval(
            "SELECT COUNT(*) FROM stocktwits_posts WHERE symbol = $1", symbol
        )
        return [_row_to_post(r) for r in rows], int(total or 0)

    async def list_since(self, symbol: str, since: datetime) -> list[Post]:
        """Posts strictly newer than ``since`` (by original post time), newest first."""
        rows = await self.db.fetch(
            f"""
            SELECT {_POST_COLUMNS}
            FROM stocktwits_posts
            WHERE symbol = $1 AND created_at > $2
            ORDER BY created_at DESC
            """,
            symbol,
            since,
        )
        return [_row_to_post(r) for r in rows]

    async def daily_volume(self, symbol: str, days: int = 30) -> list[DailyVolume]:
        """Post counts per UTC day over the last ``days`` days."""
        since = datetime.now(UTC) - timedelta(days=days)
        rows = await self.db.fetch(
            """
            SELECT (created_at AT TIME ZONE 'UTC')::date AS day, COUNT(*) AS count
            FROM stocktwits_posts
            WHERE symbol = $1 AND created_at >= $2
            GROUP BY day
            ORDER BY day
            """,
            symbol,
            since,
        )
        return [DailyVolume(day=r["day"], count=r["count"]) for r in rows]
