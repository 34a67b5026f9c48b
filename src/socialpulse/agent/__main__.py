"""Agent lifecycle module used by the FastAPI server.

Provides `agent_lifespan()`, an async context manager that builds and tears
down the pipeline (database, transports, stores, engines) and runs the
periodic jobs on APScheduler. The FastAPI app calls this from its own lifespan;
`run_agent()` runs it standalone without the HTTP surface.

Usage:
    python -m socialpulse.agent
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from socialpulse.agent.scheduler import (
    analysis_cleanup_job,
    create_scheduler,
    post_sync_job,
    premarket_analysis_job,
    watcher_sync_job,
)
from socialpulse.config import Settings, get_settings
from socialpulse.core.constants import MARKET_TIMEZONE
from socialpulse.core.logging import get_logger, setup_logging
from socialpulse.ingestion.engine import IngestionEngine
from socialpulse.ingestion.stocktwits import StockTwitsClient
from socialpulse.ingestion.transport import CurlTransport, FallbackTransport, HttpxTransport
from socialpulse.processing.common.llm import PydanticAIBackend
from socialpulse.processing.events.calendar import EventCalendarService
from socialpulse.processing.orchestrator import BatchOrchestrator
from socialpulse.processing.sentiment.synthesizer import SynthesisEngine
from socialpulse.providers.base import TickerDirectory
from socialpulse.providers.market_calendar import HolidayMarketCalendar
from socialpulse.providers.postgres import PostgresCreditLedger, PostgresTickerDirectory
from socialpulse.storage.analyses import AnalysisStore
from socialpulse.storage.database import Database, close_database, init_database
from socialpulse.storage.events import EventCalendarStore
from socialpulse.storage.posts import PostStore
from socialpulse.storage.watchers import WatcherStore

logger = get_logger(__name__)


@dataclass
class AgentState:
    """Holds references to all running pipeline resources."""

    db: Database | None
    settings: Settings
    ingestion: IngestionEngine
    synthesis: SynthesisEngine
    events: EventCalendarService
    orchestrator: BatchOrchestrator
    tickers: TickerDirectory
    posts: PostStore
    scheduler: AsyncIOScheduler | None = None


def build_transport(settings: Settings) -> FallbackTransport:
    """Primary httpx transport with the curl CLI as fallback."""
    return FallbackTransport(
        [
            HttpxTransport(
                user_agent=settings.stocktwits_user_agent,
                timeout=settings.http_timeout_seconds,
            ),
            CurlTransport(
                user_agent=settings.stocktwits_user_agent,
                timeout=settings.curl_timeout_seconds,
                binary=settings.curl_binary,
            ),
        ]
    )


@asynccontextmanager
async def agent_lifespan(settings: Settings) -> AsyncIterator[AgentState]:
    """Async context manager that starts/stops the entire pipeline.

    Yields an AgentState with references to all running resources.
    On exit, gracefully shuts down everything.
    """
    db_initialized = False
    ingestion: IngestionEngine | None = None
    scheduler: AsyncIOScheduler | None = None

    try:
        # 1. Connect to PostgreSQL
        logger.debug("Connecting to PostgreSQL")
        db = await init_database(settings.database_url)
        db_initialized = True
        logger.debug("PostgreSQL connected")

        # 2. Stores and collaborators
        posts = PostStore(db)
        watchers = WatcherStore(db)
        analyses = AnalysisStore(db)
        event_store = EventCalendarStore(db)
        tickers = PostgresTickerDirectory(db)
        credits = PostgresCreditLedger(db)
        market_calendar = HolidayMarketCalendar(settings.market_holidays)

        # 3. Engines
        client = StockTwitsClient(build_transport(settings), base_url=settings.stocktwits_base_url)
        ingestion = IngestionEngine(
            client, posts, watchers, default_max_pages=settings.ingest_max_pages
        )
        backend = PydanticAIBackend()
        events = EventCalendarService(event_store, backend, tickers)
        synthesis = SynthesisEngine(
            ingestion,
            posts,
            analyses,
            events,
            backend,
            tickers,
            credits,
            refresh_pages=settings.analysis_refresh_pages,
        )
        orchestrator = BatchOrchestrator(
            synthesis,
            tickers,
            market_calendar,
            credits,
            events,
            credit_cost=settings.social_analysis_credit_cost,
            event_search_enabled=settings.event_search_enabled,
        )

        # 4. Periodic jobs
        scheduler = create_scheduler()

        scheduler.add_job(
            premarket_analysis_job,
            CronTrigger(
                day_of_week="mon-fri",
                hour=settings.premarket_hour,
                minute=settings.premarket_minute,
                timezone=MARKET_TIMEZONE,
            ),
            args=[orchestrator],
            id="premarket_analysis",
            max_instances=1,
            misfire_grace_time=None,
        )
        scheduler.add_job(
            post_sync_job,
            IntervalTrigger(minutes=settings.post_sync_interval_minutes),
            args=[ingestion, tickers, settings.ingest_max_pages],
            id="post_sync",
            max_instances=1,
        )
        scheduler.add_job(
            watcher_sync_job,
            CronTrigger(hour=0, minute=0),
            args=[ingestion, tickers],
            id="watcher_sync",
            max_instances=1,
        )
        scheduler.add_job(
            analysis_cleanup_job,
            CronTrigger(hour=3, minute=0),
            args=[synthesis, settings.analysis_retention_days],
            id="analysis_cleanup",
            max_instances=1,
        )
        scheduler.start()

        logger.info(
            "Agent ready",
            llm_provider=settings.llm_provider,
            llm_model=settings.llm_model,
            premarket=f"{settings.premarket_hour:02d}:{settings.premarket_minute:02d} {MARKET_TIMEZONE}",
            post_sync_minutes=settings.post_sync_interval_minutes,
            event_search_enabled=settings.event_search_enabled,
        )

        yield AgentState(
            db=db,
            settings=settings,
            ingestion=ingestion,
            synthesis=synthesis,
            events=events,
            orchestrator=orchestrator,
            tickers=tickers,
            posts=posts,
            scheduler=scheduler,
        )

    finally:
        logger.info("Shutting down agent...")

        if scheduler and scheduler.running:
            scheduler.shutdown(wait=False)
            logger.debug("Scheduler stopped")

        if ingestion:
            try:
                await ingestion.close()
            except Exception as e:
                logger.error("Failed to close ingestion engine", error=str(e))

        if db_initialized:
            await close_database()
            logger.debug("PostgreSQL disconnected")

        logger.info("Agent shutdown complete")


async def run_agent() -> None:
    """Run the pipeline without the HTTP server until SIGINT/SIGTERM."""
    settings = get_settings()
    setup_logging(settings)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with agent_lifespan(settings):
        await stop.wait()


if __name__ == "__main__":
    asyncio.run(run_agent())
