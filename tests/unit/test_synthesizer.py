"""Tests for the sentiment synthesis engine (processing/sentiment/synthesizer.py)."""

from __future__ import annotations

import re
from datetime import timedelta
from unittest.mock import AsyncMock

import orjson
import pytest

from socialpulse.core.constants import ANALYSIS_SPEND_REASON
from socialpulse.core.exceptions import (
    InsufficientCreditsError,
    LLMError,
    SynthesisError,
    TickerNotFoundError,
)
from socialpulse.processing.models import SentimentLabel
from socialpulse.processing.sentiment.models import AnalyzeOptions, WindowMode
from socialpulse.processing.sentiment.synthesizer import (
    SynthesisEngine,
    build_prompt,
    plan_window,
    retry_subset,
    select_top_posts,
)

RESPONSE = orjson.dumps(
    {
        "sentiment_score": 0.3,
        "weighted_sentiment_score": 0.4,
        "sentiment_label": "BULLISH",
        "summary": "Optimism ahead of earnings.",
        "highlights": {"topics": ["earnings"], "bullish_points": ["iPhone demand"]},
        "extracted_events": [{"title": "Q4 Earnings Call", "date": "2025-01-30", "impact": 8}],
    }
).decode()


def _posts_in_prompt(prompt: str) -> int:
    match = re.search(r"posts\[(\d+)\]\{d,l,b\}:", prompt)
    assert match is not None
    return int(match.group(1))


@pytest.fixture
def ingestion() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def events() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def tickers(ticker_directory):
    ticker_directory.add("AAPL")
    return ticker_directory


def _engine(ingestion, post_store, analysis_store, events, backend, tickers, credits, now):
    return SynthesisEngine(
        ingestion,
        post_store,
        analysis_store,
        events,
        backend,
        tickers,
        credits,
        refresh_pages=50,
        clock=lambda: now,
    )


@pytest.fixture
def build(ingestion, post_store, analysis_store, events, tickers, credit_ledger, now):
    def _build(backend):
        return _engine(
            ingestion, post_store, analysis_store, events, backend, tickers, credit_ledger, now
        )

    return _build


async def _seed(post_store, make_post, ids, **kwargs) -> None:
    for i in ids:
        await post_store.insert(make_post(i, **kwargs))


# =============================================================================
# Pure helpers
# =============================================================================


class TestPlanWindow:
    def test_no_previous_is_full(self, now) -> None:
        plan = plan_window(None, now)
        assert plan.mode == WindowMode.full
        assert plan.since == now - timedelta(days=30)
        assert plan.previous is None

    def test_recent_deep_previous_is_incremental(self, now, make_analysis) -> None:
        previous = make_analysis(posts_analyzed=40)
        plan = plan_window(previous, now)
        assert plan.is_incremental
        assert plan.since == previous.created_at
        assert plan.previous is previous

    def test_shallow_previous_is_full(self, now, make_analysis) -> None:
        plan = plan_window(make_analysis(posts_analyzed=5), now)
        assert plan.mode == WindowMode.full

    def test_expired_previous_is_full(self, now, make_analysis) -> None:
        plan = plan_window(make_analysis(created_at=now - timedelta(days=31)), now)
        assert plan.mode == WindowMode.full


class TestSelection:
    def test_top_posts_by_likes_then_recency(self, make_post) -> None:
        posts = [
            make_post(1, likes=5, age=timedelta(hours=3)),
            make_post(2, likes=50),
            make_post(3, likes=5, age=timedelta(hours=1)),
        ]
        assert [p.id for p in select_top_posts(posts, limit=2)] == [2, 3]

    @pytest.mark.parametrize("size", [1, 2, 10, 50, 51, 150])
    def test_retry_subset_strictly_smaller(self, make_post, size: int) -> None:
        selected = [make_post(i) for i in range(size)]
        assert len(retry_subset(selected)) < size

    def test_retry_subset_caps_at_limit(self, make_post) -> None:
        selected = [make_post(i) for i in range(150)]
        assert len(retry_subset(selected)) == 50


class TestBuildPrompt:
    def test_incremental_prompt_carries_previous_summary(self, make_post, make_analysis) -> None:
        previous = make_analysis(summary="Bulls focused on services revenue.")
        prompt = build_prompt("AAPL", [make_post(1)], "themes", previous)
        assert "Bulls focused on services revenue." in prompt
        assert "NEW since that analysis" in prompt

    def test_posts_shape_instructions(self, make_post) -> None:
        prompt = build_prompt("AAPL", [make_post(1)], "posts")
        assert '"excerpt"' in prompt
        assert "Previous Analysis" not in prompt


# =============================================================================
# Engine
# =============================================================================


class TestAnalyze:
    async def test_unknown_ticker(self, build, make_backend, ingestion) -> None:
        engine = build(make_backend())
        with pytest.raises(TickerNotFoundError):
            await engine.analyze("ZZZZ")
        ingestion.ingest_posts.assert_not_awaited()

    async def test_refreshes_posts_first(self, build, make_backend, ingestion) -> None:
        await build(make_backend()).analyze("aapl")
        ingestion.ingest_posts.assert_awaited_once_with("AAPL", 50)

    async def test_full_window_with_too_few_posts(
        self, build, make_backend, post_store, make_post
    ) -> None:
        await _seed(post_store, make_post, range(1, 5))
        backend = make_backend()

        assert await build(backend).analyze("AAPL") is None
        assert backend.requests == []

    async def test_full_window_analysis(
        self, build, make_backend, post_store, make_post, analysis_store, events, now
    ) -> None:
        await _seed(post_store, make_post, range(1, 9))
        backend = make_backend(RESPONSE)

        analysis = await build(backend).analyze("AAPL")

        assert analysis is not None
        assert analysis.id is not None
        assert analysis.ticker_id == 1
        assert analysis.posts_analyzed == 8
        assert analysis.analysis_start == now - timedelta(days=30)
        assert analysis.analysis_end == now - timedelta(hours=1)
        assert analysis.sentiment_label == SentimentLabel.bullish
        assert analysis.model_used == "test-model"
        assert analysis.tokens_used == 150
        assert analysis_store.rows == [analysis]
        assert _posts_in_prompt(backend.requests[0].prompt) == 8
        events.save_social_events.assert_awaited_once_with(
            "AAPL", 1, analysis.extracted_events, analysis_id=analysis.id
        )

    async def test_shallow_previous_reanalyzes_full_window(
        self, build, make_backend, post_store, make_post, analysis_store, make_analysis, now
    ) -> None:
        await analysis_store.insert(make_analysis(posts_analyzed=5, created_at=now - timedelta(hours=2)))
        # Older than the previous run, so only a full window sees them
        await _seed(post_store, make_post, range(1, 7), age=timedelta(hours=5))

        analysis = await build(make_backend(RESPONSE)).analyze("AAPL")

        assert analysis is not None
        assert analysis.posts_analyzed == 6
        assert analysis.analysis_start == now - timedelta(days=30)

    async def test_incremental_chain_accumulates(
        self, build, make_backend, post_store, make_post, analysis_store, make_analysis, now
    ) -> None:
        start = now - timedelta(days=20)
        previous = make_analysis(
            posts_analyzed=40,
            created_at=now - timedelta(hours=6),
            analysis_start=start,
            summary="Bulls focused on services revenue.",
        )
        await analysis_store.insert(previous)
        await _seed(post_store, make_post, range(100, 110), age=timedelta(hours=8))  # already analyzed
        await _seed(post_store, make_post, range(1, 11), age=timedelta(hours=1))
        backend = make_backend(RESPONSE)

        analysis = await build(backend).analyze("AAPL")

        assert analysis is not None
        assert analysis.id != previous.id
        assert analysis.posts_analyzed == 50
        assert analysis.analysis_start == start
        assert analysis.analysis_end == now - timedelta(hours=1)
        prompt = backend.requests[0].prompt
        assert _posts_in_prompt(prompt) == 10
        assert "Bulls focused on services revenue." in prompt

    async def test_incremental_without_new_posts_is_noop(
        self, build, make_backend, post_store, make_post, analysis_store, make_analysis, now
    ) -> None:
        previous = make_analysis(posts_analyzed=40, created_at=now - timedelta(hours=2))
        await analysis_store.insert(previous)
        await _seed(post_store, make_post, range(1, 30), age=timedelta(hours=3))
        backend = make_backend()

        analysis = await build(backend).analyze("AAPL")

        assert analysis is not None
        assert analysis.id == previous.id
        assert backend.requests == []
        assert len(analysis_store.rows) == 1

    async def test_retry_with_smaller_subset(
        self, build, make_backend, post_store, make_post
    ) -> None:
        await _seed(post_store, make_post, range(1, 13))
        backend = make_backend(LLMError("rate limited"), RESPONSE)

        analysis = await build(backend).analyze("AAPL")

        assert analysis is not None
        first, second = (_posts_in_prompt(r.prompt) for r in backend.requests)
        assert first == 12
        assert second < first
        assert analysis.posts_analyzed == second

    async def test_unparseable_output_triggers_retry(
        self, build, make_backend, post_store, make_post
    ) -> None:
        await _seed(post_store, make_post, range(1, 13))
        backend = make_backend("I cannot help with that.", RESPONSE)

        analysis = await build(backend).analyze("AAPL")

        assert analysis is not None
        assert len(backend.requests) == 2

    async def test_both_attempts_fail(
        self, build, make_backend, post_store, make_post, analysis_store
    ) -> None:
        await _seed(post_store, make_post, range(1, 13))
        backend = make_backend(LLMError("down"), LLMError("still down"))

        with pytest.raises(SynthesisError):
            await build(backend).analyze("AAPL")
        assert analysis_store.rows == []

    async def test_event_save_failure_does_not_fail_analysis(
        self, build, make_backend, post_store, make_post, events
    ) -> None:
        await _seed(post_store, make_post, range(1, 9))
        events.save_social_events.side_effect = RuntimeError("db down")

        analysis = await build(make_backend(RESPONSE)).analyze("AAPL")

        assert analysis is not None

    async def test_highlight_shape_passed_through(
        self, build, make_backend, post_store, make_post
    ) -> None:
        await _seed(post_store, make_post, range(1, 9))
        response = orjson.dumps(
            {
                "sentiment_score": -0.2,
                "summary": "Mixed.",
                "highlights": [{"excerpt": "Puts loaded", "reason": "most liked"}],
            }
        ).decode()

        analysis = await build(make_backend(response)).analyze(
            "AAPL", options=AnalyzeOptions(highlights="posts")
        )

        assert analysis is not None
        assert analysis.highlights.kind == "posts"


class TestCreditGate:
    async def test_insufficient_credits_blocks_backend(
        self, build, make_backend, post_store, make_post, credit_ledger
    ) -> None:
        await _seed(post_store, make_post, range(1, 9))
        credit_ledger.balances["user-1"] = 0
        backend = make_backend(RESPONSE)

        with pytest.raises(InsufficientCreditsError):
            await build(backend).analyze("AAPL", user_id="user-1")

        assert backend.requests == []
        assert credit_ledger.deductions == []

    async def test_charges_model_cost(
        self, build, make_backend, post_store, make_post, credit_ledger
    ) -> None:
        await _seed(post_store, make_post, range(1, 9))
        credit_ledger.balances["user-1"] = 10
        backend = make_backend(RESPONSE)

        await build(backend).analyze(
            "AAPL", user_id="user-1", options=AnalyzeOptions(model="gemini-2.5-pro")
        )

        assert credit_ledger.balances["user-1"] == 5
        user_id, amount, reason, metadata = credit_ledger.deductions[0]
        assert (user_id, amount, reason) == ("user-1", 5, ANALYSIS_SPEND_REASON)
        assert metadata == {"symbol": "AAPL", "model": "gemini-2.5-pro"}
        assert backend.requests[0].quality == "high"

    async def test_noop_run_is_not_charged(
        self, build, make_backend, post_store, make_post, credit_ledger
    ) -> None:
        credit_ledger.balances["user-1"] = 10
        await _seed(post_store, make_post, range(1, 3))

        assert await build(make_backend()).analyze("AAPL", user_id="user-1") is None
        assert credit_ledger.deductions == []

    async def test_scheduled_run_without_user_is_free(
        self, build, make_backend, post_store, make_post, credit_ledger
    ) -> None:
        await _seed(post_store, make_post, range(1, 9))
        await build(make_backend(RESPONSE)).analyze("AAPL")
        assert credit_ledger.deductions == []


class TestMaintenance:
    async def test_cleanup_old_analyses(
        self, build, make_backend, analysis_store, make_analysis, now
    ) -> None:
        await analysis_store.insert(make_analysis(created_at=now - timedelta(days=40)))
        await analysis_store.insert(make_analysis(created_at=now - timedelta(days=1)))

        removed = await build(make_backend()).cleanup_old_analyses(30)

        assert removed == 1
        assert len(analysis_store.rows) == 1

    async def test_delete_analysis(self, build, make_backend, analysis_store, make_analysis) -> None:
        saved = await analysis_store.insert(make_analysis())
        engine = build(make_backend())

        assert await engine.delete_analysis(saved.id) is True
        assert await engine.delete_analysis(saved.id) is False

    async def test_history_newest_first(
        self, build, make_backend, analysis_store, make_analysis, now
    ) -> None:
        older = await analysis_store.insert(make_analysis(created_at=now - timedelta(days=2)))
        newer = await analysis_store.insert(make_analysis(created_at=now - timedelta(days=1)))

        history = await build(make_backend()).history("aapl")

        assert [a.id for a in history] == [newer.id, older.id]
