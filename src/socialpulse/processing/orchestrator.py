"""Pre-market batch: analyze every ticker with scheduled social analysis enabled.

Tickers are processed strictly one after another to stay within upstream
rate limits. A failure for one ticker is counted and logged; the batch
always runs to the end and reports partial results.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from socialpulse.core.constants import BATCH_SPEND_REASON, MARKET_TIMEZONE, PAYING_PLAN_TIER
from socialpulse.core.exceptions import InsufficientCreditsError
from socialpulse.core.logging import get_logger, symbol_context
from socialpulse.processing.events.calendar import EventCalendarService
from socialpulse.processing.sentiment.synthesizer import SynthesisEngine
from socialpulse.providers.base import CreditLedger, MarketCalendar, TickerDirectory, TickerRef

logger = get_logger(__name__)


def market_today() -> date:
    """Today's date in the market's timezone."""
    return datetime.now(ZoneInfo(MARKET_TIMEZONE)).date()


class BatchResult(BaseModel):
    """Aggregate counts for one batch run."""

    processed: int = 0
    skipped: int = 0
    errors: int = 0


class BatchOrchestrator:
    """Runs the scheduled sentiment analysis across enabled tickers."""

    def __init__(
        self,
        synthesis: SynthesisEngine,
        tickers: TickerDirectory,
        market_calendar: MarketCalendar,
        credits: CreditLedger,
        events: EventCalendarService | None = None,
        credit_cost: float = 2,
        event_search_enabled: bool = False,
        today: Callable[[], date] = market_today,
    ) -> None:
        self.synthesis = synthesis
        self.tickers = tickers
        self.market_calendar = market_calendar
        self.credits = credits
        self.events = events
        self.credit_cost = credit_cost
        self.event_search_enabled = event_search_enabled
        self._today = today

    async def run_scheduled_analysis(self) -> BatchResult:
        """Analyze each enabled ticker once.

        Returns:
            BatchResult with processed/skipped/errors counts; all zero on a
            non-trading day
        """
        result = BatchResult()
        today = self._today()

        if not await self.market_calendar.is_trading_day(today):
            logger.info("Market closed today, skipping scheduled analysis", day=str(today))
            return result

        tickers = await self.tickers.list_tickers_with_analysis_enabled()
        if not tickers:
            logger.info("No tickers have social analysis enabled")
            return result

        logger.info("Running scheduled analysis", tickers=len(tickers))
        for ticker in tickers:
            with symbol_context(ticker.symbol, ticker_id=ticker.id):
                await self._run_ticker(ticker, result)

        logger.info(
            "Scheduled analysis complete",
            processed=result.processed,
            skipped=result.skipped,
            errors=result.errors,
        )
        return result

    async def _run_ticker(self, ticker: TickerRef, result: BatchResult) -> None:
        """Charge, analyze and optionally search one ticker, tallying into ``result``."""
        try:
            if not await self._charge_owner(ticker):
                result.skipped += 1
                return

            analysis = await self.synthesis.analyze(ticker.symbol)
            if self.event_search_enabled and self.events is not None:
                await self.events.search_upcoming_events(ticker.symbol)

            result.processed += 1
            logger.info("Completed analysis", analysis_id=str(analysis.id) if analysis else None)
        except InsufficientCreditsError as e:
            logger.warning("Skipping ticker, insufficient credits", error=e.message)
            result.skipped += 1
        except Exception:
            logger.exception("Scheduled analysis failed")
            result.errors += 1

    async def _charge_owner(self, ticker: TickerRef) -> bool:
        """Deduct the batch cost from a paying owner. False when they cannot pay."""
        owner = await self.tickers.get_analysis_owner(ticker.id)
        if owner is None or owner.plan_tier != PAYING_PLAN_TIER:
            return True

        balance = await self.credits.get_balance(owner.user_id)
        if balance < self.credit_cost:
            logger.warning(
                "Skipping ticker, owner has insufficient credits",
                user_id=owner.user_id,
                balance=balance,
            )
            return False

        await self.credits.deduct(
            owner.user_id,
            self.credit_cost,
            BATCH_SPEND_REASON,
            {"ticker_id": ticker.id, "symbol": ticker.symbol},
        )
        return True
