"""Ingestion engine: paginated post crawl and watcher tracking per symbol.

Post crawls for one symbol are serialized through an in-flight registry, so
overlapping callers share a single fetch sequence instead of racing.
"""

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog

from socialpulse.core.constants import POST_RETENTION_DAYS, WATCHER_STALE_HOURS
from socialpulse.core.exceptions import DuplicateRecordError, UpstreamExhaustedError
from socialpulse.core.logging import symbol_context
from socialpulse.ingestion.stocktwits import RawMessage, StockTwitsClient
from socialpulse.processing.models import Post, WatcherSnapshot
from socialpulse.storage.posts import PostStore
from socialpulse.storage.watchers import WatcherStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InFlightRegistry(Generic[T]):
    """Map from key to the task currently doing the work for that key.

    The entry is installed synchronously (no await between lookup and insert),
    and removed by a done-callback, so it is released on success, failure and
    cancellation alike.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[T]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def acquire_or_join(
        self, key: str, factory: Callable[[], Coroutine[Any, Any, T]]
    ) -> asyncio.Task[T]:
        """Return the in-flight task for ``key``, starting one from ``factory`` if none."""
        existing = self._tasks.get(key)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.create_task(factory(), name=f"inflight:{key}")
        self._tasks[key] = task
        task.add_done_callback(lambda t: self.release(key, t))
        return task

    def release(self, key: str, task: asyncio.Task[T]) -> None:
        # A newer task may already own the key; only drop our own entry
        if self._tasks.get(key) is task:
            del self._tasks[key]

    async def run(self, key: str, factory: Callable[[], Coroutine[Any, Any, T]]) -> T:
        """Start or join the work for ``key`` and wait for its result.

        Cancelling one waiter does not cancel the shared task.
        """
        task = self.acquire_or_join(key, factory)
        return await asyncio.shield(task)


class StopReason(str, Enum):
    """Why a post crawl stopped paging."""

    history_boundary = "history_boundary"
    retention_horizon = "retention_horizon"
    max_pages = "max_pages"
    end_of_stream = "end_of_stream"
    blocked = "blocked"
    error = "error"


@dataclass
class IngestResult:
    """Outcome of one ``ingest_posts`` crawl."""

    symbol: str
    pages_fetched: int = 0
    new_posts: int = 0
    stop_reason: StopReason = StopReason.max_pages


@dataclass
class SyncResult:
    """Outcome of a manual per-symbol sync."""

    posts: IngestResult
    watchers: WatcherSnapshot | None


class IngestionEngine:
    """Fetches posts and watcher counts for symbols and persists them."""

    def __init__(
        self,
        client: StockTwitsClient,
        posts: PostStore,
        watchers: WatcherStore,
        default_max_pages: int = 5,
        retention_days: int = POST_RETENTION_DAYS,
        watcher_stale_after: timedelta = timedelta(hours=WATCHER_STALE_HOURS),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.client = client
        self.posts = posts
        self.watchers = watchers
        self.default_max_pages = default_max_pages
        self.retention = timedelta(days=retention_days)
        self.watcher_stale_after = watcher_stale_after
        self._clock = clock

        self._post_crawls: InFlightRegistry[IngestResult] = InFlightRegistry()
        self._watcher_refreshes: InFlightRegistry[WatcherSnapshot | None] = InFlightRegistry()
        # Strong references so background refreshes are not garbage-collected mid-flight
        self._background: set[asyncio.Task[Any]] = set()

    # -------------------------------------------------------------------------
    # Posts
    # -------------------------------------------------------------------------

    async def ingest_posts(self, symbol: str, max_pages: int | None = None) -> IngestResult:
        """Fetch up to ``max_pages`` pages of posts for ``symbol`` and persist new ones.

        A concurrent call for the same symbol joins the crawl already in flight.
        Never raises: failures are logged and reported via ``stop_reason``.
        """
        symbol = symbol.upper()
        pages = max_pages if max_pages is not None else self.default_max_pages
        return await self._post_crawls.run(symbol, lambda: self._crawl(symbol, pages))

    async def _crawl(self, symbol: str, max_pages: int) -> IngestResult:
        log = logger.bind(symbol=symbol, max_pages=max_pages)
        result = IngestResult(symbol=symbol)
        horizon = self._clock() - self.retention
        cursor: int | None = None

        log.info("post_crawl_started")
        try:
            for page_no in range(1, max_pages + 1):
                page = await self.client.fetch_page(symbol, cursor)
                result.pages_fetched = page_no

                if not page.messages:
                    result.stop_reason = StopReason.end_of_stream
                    break

                stored = await self._store_messages(symbol, page.messages)
                result.new_posts += stored

                if stored == 0:
                    result.stop_reason = StopReason.history_boundary
                    break
                oldest = page.oldest_created_at
                if oldest is not None and oldest < horizon:
                    result.stop_reason = StopReason.retention_horizon
                    break
                if not page.more or page.cursor is None:
                    result.stop_reason = StopReason.end_of_stream
                    break
                cursor = page.cursor
            else:
                result.stop_reason = StopReason.max_pages
        except UpstreamExhaustedError as e:
            log.warning("post_crawl_blocked", error=e.message, pages=result.pages_fetched)
            result.stop_reason = StopReason.blocked
        except Exception:
            log.exception("post_crawl_failed", pages=result.pages_fetched)
            result.stop_reason = StopReason.error

        log.info(
            "post_crawl_finished",
            pages=result.pages_fetched,
            new_posts=result.new_posts,
            stop_reason=result.stop_reason.value,
        )
        return result

    async def _store_messages(self, symbol: str, messages: list[RawMessage]) -> int:
        stored = 0
        for msg in messages:
            if await self.posts.exists(msg.id):
                continue
            post = Post(
                id=msg.id,
                symbol=symbol,
                username=msg.username,
                body=msg.body,
                likes_count=msg.likes,
                user_followers_count=msg.followers,
                created_at=msg.created_at,
            )
            try:
                await self.posts.insert(post)
            except DuplicateRecordError:
                # Another writer stored it between exists() and insert()
                logger.debug("post_insert_race", symbol=symbol, post_id=msg.id)
                continue
            stored += 1
        return stored

    # -------------------------------------------------------------------------
    # Watchers
    # -------------------------------------------------------------------------

    async def track_watchers(self, symbol: str) -> WatcherSnapshot | None:
        """Fetch the current watcher count and append one snapshot.

        Missing data or a failed fetch is logged and returns None.
        """
        symbol = symbol.upper()
        log = logger.bind(symbol=symbol)
        try:
            count = await self.client.fetch_watcher_count(symbol)
            if count is None:
                return None
            snapshot = await self.watchers.append(symbol, count, self._clock())
        except UpstreamExhaustedError as e:
            log.warning("watcher_fetch_blocked", error=e.message)
            return None
        except Exception:
            log.exception("watcher_tracking_failed")
            return None

        log.info("watchers_recorded", count=count)
        return snapshot

    async def get_watcher_history(self, symbol: str) -> list[WatcherSnapshot]:
        """Watcher snapshots, oldest first, refreshing them when stale.

        With no history the refresh is awaited so a first viewer always gets
        data; otherwise a stale series is refreshed in the background.
        """
        symbol = symbol.upper()
        history = await self.watchers.history(symbol)

        if not history:
            await self._watcher_refreshes.run(symbol, lambda: self.track_watchers(symbol))
            return await self.watchers.history(symbol)

        if self._clock() - history[-1].timestamp > self.watcher_stale_after:
            self._refresh_watchers_in_background(symbol)
        return history

    def _refresh_watchers_in_background(self, symbol: str) -> None:
        if symbol in self._watcher_refreshes:
            return
        task = self._watcher_refreshes.acquire_or_join(symbol, lambda: self.track_watchers(symbol))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        logger.debug("watcher_refresh_scheduled", symbol=symbol)

    # -------------------------------------------------------------------------
    # Batch sync
    # -------------------------------------------------------------------------

    async def sync_all_posts(
        self, symbols: list[str], max_pages: int | None = None
    ) -> list[IngestResult]:
        """Crawl posts for each symbol, one at a time."""
        results = []
        for symbol in symbols:
            with symbol_context(symbol):
                results.append(await self.ingest_posts(symbol, max_pages))
        logger.info(
            "post_sync_complete",
            symbols=len(symbols),
            new_posts=sum(r.new_posts for r in results),
        )
        return results

    async def sync_all_watchers(self, symbols: list[str]) -> int:
        """Record a watcher snapshot for each symbol. Returns snapshots written."""
        written = 0
        for symbol in symbols:
            with symbol_context(symbol):
                if await self.track_watchers(symbol) is not None:
                    written += 1
        logger.info("watcher_sync_complete", symbols=len(symbols), written=written)
        return written

    async def sync_symbol(self, symbol: str, max_pages: int | None = None) -> SyncResult:
        """Manual sync for one symbol: posts, then watchers."""
        posts = await self.ingest_posts(symbol, max_pages)
        watchers = await self.track_watchers(symbol)
        return SyncResult(posts=posts, watchers=watchers)

    async def close(self) -> None:
        """Wait for background refreshes, then close the upstream client."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.client.close()
