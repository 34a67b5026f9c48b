"""Pytest fixtures and configuration.

The in-memory fakes below stand in for the asyncpg-backed stores and the
host-application collaborators. They keep their state in plain attributes so
tests can assert on what was written.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import pytest

from socialpulse.core.exceptions import DuplicateRecordError, InsufficientCreditsError
from socialpulse.processing.common.llm import GenerationRequest, GenerationResult
from socialpulse.processing.models import (
    Analysis,
    CalendarEvent,
    DailyVolume,
    EventSource,
    Post,
    WatcherSnapshot,
)
from socialpulse.providers.base import AnalysisOwner, TickerRef

NOW = datetime(2025, 1, 27, 14, 0, tzinfo=timezone.utc)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests by default unless -m integration is specified."""
    # Check if user explicitly requested integration tests
    markexpr = config.getoption("-m", default="")
    if "integration" in markexpr:
        # User wants integration tests, don't skip
        return

    # Skip integration tests by default
    skip_integration = pytest.mark.skip(reason="Integration test - run with: pytest -m integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio for async tests."""
    return "asyncio"


# ---------------------------------------------------------------------------
# In-memory stores
# ---------------------------------------------------------------------------


class FakePostStore:
    def __init__(self) -> None:
        self.rows: dict[int, Post] = {}
        self.insert_calls = 0

    async def exists(self, post_id: int) -> bool:
        return post_id in self.rows

    async def insert(self, post: Post) -> None:
        self.insert_calls += 1
        if post.id in self.rows:
            raise DuplicateRecordError(f"Post {post.id} already stored")
        self.rows[post.id] = post.model_copy(update={"ingested_at": NOW})

    def _for_symbol(self, symbol: str) -> list[Post]:
        return sorted(
            (p for p in self.rows.values() if p.symbol == symbol),
            key=lambda p: p.created_at,
            reverse=True,
        )

    async def list_page(self, symbol: str, page: int = 1, limit: int = 50) -> tuple[list[Post], int]:
        posts = self._for_symbol(symbol)
        offset = (page - 1) * limit
        return posts[offset : offset + limit], len(posts)

    async def list_since(self, symbol: str, since: datetime) -> list[Post]:
        return [p for p in self._for_symbol(symbol) if p.created_at > since]

    async def daily_volume(self, symbol: str, days: int = 30) -> list[DailyVolume]:
        counts: dict[date, int] = {}
        for post in self._for_symbol(symbol):
            counts[post.created_at.date()] = counts.get(post.created_at.date(), 0) + 1
        return [DailyVolume(day=d, count=c) for d, c in sorted(counts.items())]


class FakeWatcherStore:
    def __init__(self) -> None:
        self.rows: list[WatcherSnapshot] = []

    async def append(self, symbol: str, count: int, timestamp: datetime) -> WatcherSnapshot:
        snapshot = WatcherSnapshot(symbol=symbol, count=count, timestamp=timestamp)
        self.rows.append(snapshot)
        return snapshot

    async def history(self, symbol: str) -> list[WatcherSnapshot]:
        return sorted((s for s in self.rows if s.symbol == symbol), key=lambda s: s.timestamp)

    async def latest(self, symbol: str) -> WatcherSnapshot | None:
        history = await self.history(symbol)
        return history[-1] if history else None


class FakeAnalysisStore:
    def __init__(self, clock: Callable[[], datetime] = lambda: NOW) -> None:
        self.rows: list[Analysis] = []
        self._clock = clock

    async def latest(self, symbol: str) -> Analysis | None:
        history = await self.history(symbol, limit=1)
        return history[0] if history else None

    async def history(self, symbol: str, limit: int = 30) -> list[Analysis]:
        rows = sorted(
            (a for a in self.rows if a.symbol == symbol),
            key=lambda a: a.created_at or NOW,
            reverse=True,
        )
        return rows[:limit]

    async def get(self, analysis_id: UUID) -> Analysis | None:
        return next((a for a in self.rows if a.id == analysis_id), None)

    async def insert(self, analysis: Analysis) -> Analysis:
        saved = analysis.model_copy(
            update={"id": analysis.id or uuid4(), "created_at": analysis.created_at or self._clock()}
        )
        self.rows.append(saved)
        return saved

    async def delete(self, analysis_id: UUID) -> bool:
        before = len(self.rows)
        self.rows = [a for a in self.rows if a.id != analysis_id]
        return len(self.rows) < before

    async def delete_older_than(self, cutoff: datetime) -> int:
        before = len(self.rows)
        self.rows = [a for a in self.rows if (a.created_at or NOW) >= cutoff]
        return before - len(self.rows)


class FakeEventStore:
    def __init__(self) -> None:
        self.rows: list[CalendarEvent] = []
        self.fail_inserts = False

    async def delete_future_by_source(self, symbol: str, source: EventSource, from_date: date) -> int:
        before = len(self.rows)
        self.rows = [
            e
            for e in self.rows
            if not (
                e.symbol == symbol
                and e.source == source
                and e.event_date is not None
                and e.event_date >= from_date
            )
        ]
        return before - len(self.rows)

    async def replace_future_by_source(
        self, symbol: str, source: EventSource, from_date: date, events: list[CalendarEvent]
    ) -> int:
        if self.fail_inserts:
            raise RuntimeError("insert failed")
        deleted = await self.delete_future_by_source(symbol, source, from_date)
        await self.insert_many(events)
        return deleted

    async def list_since(self, symbol: str, from_date: date) -> list[CalendarEvent]:
        return sorted(
            (
                e
                for e in self.rows
                if e.symbol == symbol and e.event_date is not None and e.event_date >= from_date
            ),
            key=lambda e: e.event_date or from_date,
        )

    async def list_between(self, symbol: str, start: date, end: date) -> list[CalendarEvent]:
        return [e for e in await self.list_since(symbol, start) if e.event_date and e.event_date <= end]

    async def insert_many(self, events: list[CalendarEvent]) -> int:
        self.rows.extend(e.model_copy(update={"id": uuid4()}) for e in events)
        return len(events)


# ---------------------------------------------------------------------------
# Host-application collaborators
# ---------------------------------------------------------------------------


class FakeTickerDirectory:
    def __init__(self) -> None:
        self.tickers: dict[str, TickerRef] = {}
        self.enabled: list[str] = []
        self.owners: dict[int, AnalysisOwner] = {}

    def add(self, symbol: str, enabled: bool = False, owner: AnalysisOwner | None = None) -> TickerRef:
        ticker = TickerRef(id=len(self.tickers) + 1, symbol=symbol, name=f"{symbol} Inc.")
        self.tickers[symbol] = ticker
        if enabled:
            self.enabled.append(symbol)
        if owner is not None:
            self.owners[ticker.id] = owner
        return ticker

    async def list_tickers_with_analysis_enabled(self) -> list[TickerRef]:
        return [self.tickers[s] for s in self.enabled]

    async def find_by_symbol(self, symbol: str) -> TickerRef | None:
        return self.tickers.get(symbol.upper())

    async def get_analysis_owner(self, ticker_id: int) -> AnalysisOwner | None:
        return self.owners.get(ticker_id)

    async def list_symbols(self) -> list[str]:
        return sorted(self.tickers)


class FakeCreditLedger:
    def __init__(self, balances: dict[str, float] | None = None) -> None:
        self.balances: dict[str, float] = dict(balances or {})
        self.deductions: list[tuple[str, float, str, dict[str, Any] | None]] = []

    async def get_balance(self, user_id: str) -> float:
        return self.balances.get(user_id, 0)

    async def deduct(
        self,
        user_id: str,
        amount: float,
        reason: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        balance = self.balances.get(user_id, 0)
        if balance < amount:
            raise InsufficientCreditsError("Insufficient credits", balance=balance, cost=amount)
        self.balances[user_id] = balance - amount
        self.deductions.append((user_id, amount, reason, metadata))


class FakeBackend:
    """Replays queued responses; an Exception in the queue is raised instead."""

    def __init__(self, *responses: str | Exception) -> None:
        self.responses: list[str | Exception] = list(responses)
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return GenerationResult(text=response, tokens_in=100, tokens_out=50, models_used=["test-model"])


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    """Fixed clock shared by the fakes and factories."""
    return NOW


@pytest.fixture
def post_store() -> FakePostStore:
    return FakePostStore()


@pytest.fixture
def watcher_store() -> FakeWatcherStore:
    return FakeWatcherStore()


@pytest.fixture
def analysis_store() -> FakeAnalysisStore:
    return FakeAnalysisStore()


@pytest.fixture
def event_store() -> FakeEventStore:
    return FakeEventStore()


@pytest.fixture
def ticker_directory() -> FakeTickerDirectory:
    return FakeTickerDirectory()


@pytest.fixture
def credit_ledger() -> FakeCreditLedger:
    return FakeCreditLedger()


@pytest.fixture
def make_backend() -> Callable[..., FakeBackend]:
    return FakeBackend


@pytest.fixture
def make_post() -> Callable[..., Post]:
    """Factory for posts; ``age`` is how long before NOW the post was created."""

    def _make(
        post_id: int,
        symbol: str = "AAPL",
        likes: int = 0,
        age: timedelta = timedelta(hours=1),
        body: str | None = None,
    ) -> Post:
        return Post(
            id=post_id,
            symbol=symbol,
            username=f"user{post_id}",
            body=body or f"post {post_id}",
            likes_count=likes,
            created_at=NOW - age,
        )

    return _make


@pytest.fixture
def make_analysis() -> Callable[..., Analysis]:
    def _make(
        symbol: str = "AAPL",
        posts_analyzed: int = 40,
        created_at: datetime = NOW - timedelta(hours=6),
        analysis_start: datetime = NOW - timedelta(days=30),
        summary: str = "Mostly bullish into earnings.",
    ) -> Analysis:
        return Analysis(
            id=uuid4(),
            ticker_id=1,
            symbol=symbol,
            analysis_start=analysis_start,
            analysis_end=created_at,
            sentiment_score=0.4,
            sentiment_label="BULLISH",
            posts_analyzed=posts_analyzed,
            weighted_sentiment_score=0.5,
            summary=summary,
            highlights={"kind": "themes", "topics": ["earnings"]},
            model_used="test-model",
            created_at=created_at,
        )

    return _make
