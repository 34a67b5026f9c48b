"""Operator job triggers, protected by the shared cron secret."""

from fastapi import APIRouter, Query

from socialpulse.core.dependencies import (
    CronSecret,
    IngestionDep,
    OrchestratorDep,
    SettingsDep,
    SynthesisDep,
    TickerDirectoryDep,
)
from socialpulse.processing.orchestrator import BatchResult

router = APIRouter(dependencies=[CronSecret])


@router.post("/pre-market-analysis", response_model=BatchResult)
async def pre_market_analysis(orchestrator: OrchestratorDep) -> BatchResult:
    return await orchestrator.run_scheduled_analysis()


@router.post("/cleanup")
async def cleanup(
    synthesis: SynthesisDep,
    days: int = Query(default=30, ge=1, le=3650),
) -> dict[str, int]:
    removed = await synthesis.cleanup_old_analyses(days)
    return {"removed": removed, "days": days}


@router.post("/sync-posts")
async def sync_posts(
    ingestion: IngestionDep,
    tickers: TickerDirectoryDep,
    settings: SettingsDep,
) -> dict[str, int]:
    symbols = await tickers.list_symbols()
    results = await ingestion.sync_all_posts(symbols, settings.ingest_max_pages)
    return {
        "symbols": len(symbols),
        "new_posts": sum(r.new_posts for r in results),
    }


@router.post("/sync-watchers")
async def sync_watchers(ingestion: IngestionDep, tickers: TickerDirectoryDep) -> dict[str, int]:
    symbols = await tickers.list_symbols()
    written = await ingestion.sync_all_watchers(symbols)
    return {"symbols": len(symbols), "written": written}
