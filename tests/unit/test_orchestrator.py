"""Tests for the pre-market batch orchestrator and market calendar."""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from socialpulse.core.constants import BATCH_SPEND_REASON
from socialpulse.core.exceptions import InsufficientCreditsError
from socialpulse.processing.orchestrator import BatchOrchestrator
from socialpulse.providers.base import AnalysisOwner
from socialpulse.providers.market_calendar import HolidayMarketCalendar

MONDAY = date(2025, 1, 27)


def _analysis() -> MagicMock:
    analysis = MagicMock()
    analysis.id = "a1"
    return analysis


@pytest.fixture
def synthesis() -> AsyncMock:
    engine = AsyncMock()
    engine.analyze.return_value = _analysis()
    return engine


@pytest.fixture
def events() -> AsyncMock:
    return AsyncMock()


def _orchestrator(synthesis, tickers, credits, events=None, *, holidays=(), search=False):
    return BatchOrchestrator(
        synthesis,
        tickers,
        HolidayMarketCalendar(holidays),
        credits,
        events,
        credit_cost=2,
        event_search_enabled=search,
        today=lambda: MONDAY,
    )


class TestHolidayMarketCalendar:
    async def test_weekday_open(self) -> None:
        assert await HolidayMarketCalendar().is_trading_day(MONDAY)

    async def test_weekend_closed(self) -> None:
        assert not await HolidayMarketCalendar().is_trading_day(date(2025, 1, 25))

    async def test_holiday_closed(self) -> None:
        calendar = HolidayMarketCalendar([date(2025, 1, 20)])
        assert not await calendar.is_trading_day(date(2025, 1, 20))


class TestRunScheduledAnalysis:
    async def test_non_trading_day_is_noop(self, synthesis, ticker_directory, credit_ledger) -> None:
        ticker_directory.add("AAPL", enabled=True)
        orchestrator = _orchestrator(synthesis, ticker_directory, credit_ledger, holidays=[MONDAY])

        result = await orchestrator.run_scheduled_analysis()

        assert (result.processed, result.skipped, result.errors) == (0, 0, 0)
        synthesis.analyze.assert_not_awaited()

    async def test_no_enabled_tickers(self, synthesis, ticker_directory, credit_ledger) -> None:
        ticker_directory.add("AAPL")
        result = await _orchestrator(synthesis, ticker_directory, credit_ledger).run_scheduled_analysis()
        assert result.processed == 0
        synthesis.analyze.assert_not_awaited()

    async def test_failure_does_not_stop_batch(self, synthesis, ticker_directory, credit_ledger) -> None:
        for symbol in ("AAPL", "MSFT", "TSLA"):
            ticker_directory.add(symbol, enabled=True)
        synthesis.analyze.side_effect = [_analysis(), RuntimeError("backend down"), _analysis()]

        result = await _orchestrator(synthesis, ticker_directory, credit_ledger).run_scheduled_analysis()

        assert (result.processed, result.skipped, result.errors) == (2, 0, 1)
        assert [c.args[0] for c in synthesis.analyze.await_args_list] == ["AAPL", "MSFT", "TSLA"]

    async def test_analyze_called_without_user(self, synthesis, ticker_directory, credit_ledger) -> None:
        ticker_directory.add("AAPL", enabled=True)
        await _orchestrator(synthesis, ticker_directory, credit_ledger).run_scheduled_analysis()
        synthesis.analyze.assert_awaited_once_with("AAPL")

    async def test_ticker_bound_to_log_context(self, synthesis, ticker_directory, credit_ledger) -> None:
        ticker_directory.add("AAPL", enabled=True)
        seen: list[dict] = []

        async def analyze(symbol: str) -> MagicMock:
            seen.append(structlog.contextvars.get_contextvars())
            return _analysis()

        synthesis.analyze.side_effect = analyze
        await _orchestrator(synthesis, ticker_directory, credit_ledger).run_scheduled_analysis()

        assert seen == [{"symbol": "AAPL", "ticker_id": 1}]
        assert "symbol" not in structlog.contextvars.get_contextvars()

    async def test_paying_owner_charged(self, synthesis, ticker_directory, credit_ledger) -> None:
        ticker = ticker_directory.add("AAPL", enabled=True, owner=AnalysisOwner("u1", "pro"))
        credit_ledger.balances["u1"] = 5

        result = await _orchestrator(synthesis, ticker_directory, credit_ledger).run_scheduled_analysis()

        assert result.processed == 1
        assert credit_ledger.balances["u1"] == 3
        assert credit_ledger.deductions == [
            ("u1", 2, BATCH_SPEND_REASON, {"ticker_id": ticker.id, "symbol": "AAPL"})
        ]

    async def test_paying_owner_without_credits_skipped(
        self, synthesis, ticker_directory, credit_ledger
    ) -> None:
        ticker_directory.add("AAPL", enabled=True, owner=AnalysisOwner("u1", "pro"))
        ticker_directory.add("MSFT", enabled=True)
        credit_ledger.balances["u1"] = 1

        result = await _orchestrator(synthesis, ticker_directory, credit_ledger).run_scheduled_analysis()

        assert (result.processed, result.skipped, result.errors) == (1, 1, 0)
        synthesis.analyze.assert_awaited_once_with("MSFT")
        assert credit_ledger.deductions == []

    async def test_free_tier_owner_not_charged(self, synthesis, ticker_directory, credit_ledger) -> None:
        ticker_directory.add("AAPL", enabled=True, owner=AnalysisOwner("u1", "free"))

        result = await _orchestrator(synthesis, ticker_directory, credit_ledger).run_scheduled_analysis()

        assert result.processed == 1
        assert credit_ledger.deductions == []

    async def test_insufficient_credits_mid_flight_counts_as_skip(
        self, synthesis, ticker_directory, credit_ledger
    ) -> None:
        ticker_directory.add("AAPL", enabled=True)
        synthesis.analyze.side_effect = InsufficientCreditsError("no credits", balance=0, cost=1)

        result = await _orchestrator(synthesis, ticker_directory, credit_ledger).run_scheduled_analysis()

        assert (result.processed, result.skipped, result.errors) == (0, 1, 0)

    async def test_event_search_when_enabled(
        self, synthesis, ticker_directory, credit_ledger, events
    ) -> None:
        ticker_directory.add("AAPL", enabled=True)

        await _orchestrator(
            synthesis, ticker_directory, credit_ledger, events, search=True
        ).run_scheduled_analysis()

        events.search_upcoming_events.assert_awaited_once_with("AAPL")

    async def test_event_search_disabled_by_default(
        self, synthesis, ticker_directory, credit_ledger, events
    ) -> None:
        ticker_directory.add("AAPL", enabled=True)
        await _orchestrator(synthesis, ticker_directory, credit_ledger, events).run_scheduled_analysis()
        events.search_upcoming_events.assert_not_awaited()
