"""Centralized job scheduler for the periodic pipeline jobs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from socialpulse.core.logging import get_logger

if TYPE_CHECKING:
    from socialpulse.ingestion.engine import IngestionEngine
    from socialpulse.processing.orchestrator import BatchOrchestrator
    from socialpulse.processing.sentiment.synthesizer import SynthesisEngine
    from socialpulse.providers.base import TickerDirectory

logger = get_logger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    """Create a new scheduler instance."""
    return AsyncIOScheduler(timezone="UTC")


async def premarket_analysis_job(orchestrator: BatchOrchestrator) -> None:
    """Run the scheduled pre-market sentiment analysis."""
    try:
        result = await orchestrator.run_scheduled_analysis()
        logger.info(
            "Pre-market analysis job complete",
            processed=result.processed,
            skipped=result.skipped,
            errors=result.errors,
        )
    except Exception:
        logger.exception("Pre-market analysis job failed")


async def post_sync_job(
    ingestion: IngestionEngine,
    tickers: TickerDirectory,
    max_pages: int | None = None,
) -> None:
    """Crawl new posts for every tracked symbol."""
    try:
        symbols = await tickers.list_symbols()
        results = await ingestion.sync_all_posts(symbols, max_pages)
        logger.info(
            "Post sync job complete",
            symbols=len(symbols),
            new_posts=sum(r.new_posts for r in results),
        )
    except Exception:
        logger.exception("Post sync job failed")


async def watcher_sync_job(ingestion: IngestionEngine, tickers: TickerDirectory) -> None:
    """Record a watcher-count snapshot for every tracked symbol."""
    try:
        symbols = await tickers.list_symbols()
        written = await ingestion.sync_all_watchers(symbols)
        logger.info("Watcher sync job complete", symbols=len(symbols), written=written)
    except Exception:
        logger.exception("Watcher sync job failed")


async def analysis_cleanup_job(synthesis: SynthesisEngine, age_days: int = 30) -> None:
    """Delete analyses past the retention horizon."""
    try:
        removed = await synthesis.cleanup_old_analyses(age_days)
        if removed:
            logger.info("Analysis cleanup job removed analyses", removed=removed)
    except Exception:
        logger.exception("Analysis cleanup job failed")
