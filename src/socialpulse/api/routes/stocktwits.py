"""StockTwits read APIs and manual per-symbol triggers."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from socialpulse.core.dependencies import (
    CronSecret,
    EventCalendarDep,
    IngestionDep,
    PostStoreDep,
    SynthesisDep,
    UserIdDep,
)
from socialpulse.core.exceptions import (
    InsufficientCreditsError,
    SynthesisError,
    TickerNotFoundError,
)
from socialpulse.processing.common.llm import Quality
from socialpulse.processing.models import (
    Analysis,
    CalendarEvent,
    DailyVolume,
    HighlightShape,
    Post,
    WatcherSnapshot,
)
from socialpulse.processing.sentiment.models import AnalyzeOptions

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class PostPage(BaseModel):
    data: list[Post]
    total: int
    page: int
    limit: int


class AnalyzeRequest(BaseModel):
    model: str | None = Field(default=None, description="Model name (also drives credit cost)")
    quality: Quality | None = Field(default=None, description="Explicit quality tier")
    highlights: HighlightShape = Field(default="themes", description="Highlight shape")


class SyncResponse(BaseModel):
    symbol: str
    pages_fetched: int
    new_posts: int
    stop_reason: str
    watchers: int | None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/{symbol}/posts", response_model=PostPage)
async def list_posts(
    symbol: str,
    posts: PostStoreDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
) -> PostPage:
    data, total = await posts.list_page(symbol.upper(), page, limit)
    return PostPage(data=data, total=total, page=page, limit=limit)


@router.get("/{symbol}/watchers", response_model=list[WatcherSnapshot])
async def watcher_history(symbol: str, ingestion: IngestionDep) -> list[WatcherSnapshot]:
    return await ingestion.get_watcher_history(symbol)


@router.get("/{symbol}/analysis", response_model=Analysis | None)
async def latest_analysis(symbol: str, synthesis: SynthesisDep) -> Analysis | None:
    return await synthesis.latest(symbol)


@router.get("/{symbol}/history", response_model=list[Analysis])
async def analysis_history(
    symbol: str,
    synthesis: SynthesisDep,
    limit: int = Query(default=30, ge=1, le=100),
) -> list[Analysis]:
    return await synthesis.history(symbol, limit)


@router.get("/{symbol}/events", response_model=list[CalendarEvent])
async def future_events(
    symbol: str,
    events: EventCalendarDep,
    days: int | None = Query(default=None, ge=1, le=365),
) -> list[CalendarEvent]:
    if days is None:
        return await events.get_future_events(symbol.upper())
    return await events.get_upcoming_events(symbol.upper(), days)


@router.get("/{symbol}/stats/volume", response_model=list[DailyVolume])
async def post_volume(
    symbol: str,
    posts: PostStoreDep,
    days: int = Query(default=30, ge=1, le=365),
) -> list[DailyVolume]:
    return await posts.daily_volume(symbol.upper(), days)


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


@router.post("/{symbol}/analyze", response_model=None)
async def analyze(
    symbol: str,
    synthesis: SynthesisDep,
    user_id: UserIdDep,
    payload: AnalyzeRequest | None = None,
) -> Analysis | dict[str, str]:
    body = payload or AnalyzeRequest()
    options = AnalyzeOptions(model=body.model, quality=body.quality, highlights=body.highlights)
    try:
        analysis = await synthesis.analyze(symbol, user_id=user_id, options=options)
    except TickerNotFoundError as e:
        raise HTTPException(404, detail=e.message) from e
    except InsufficientCreditsError as e:
        raise HTTPException(402, detail=e.message) from e
    except SynthesisError as e:
        raise HTTPException(502, detail=e.message) from e

    if analysis is None:
        return {"message": "Not enough data to analyze"}
    return analysis


@router.post("/{symbol}/sync", response_model=SyncResponse, dependencies=[CronSecret])
async def sync_symbol(symbol: str, ingestion: IngestionDep) -> SyncResponse:
    result = await ingestion.sync_symbol(symbol)
    return SyncResponse(
        symbol=result.posts.symbol,
        pages_fetched=result.posts.pages_fetched,
        new_posts=result.posts.new_posts,
        stop_reason=result.posts.stop_reason.value,
        watchers=result.watchers.count if result.watchers else None,
    )


@router.delete("/analysis/{analysis_id}", dependencies=[CronSecret])
async def delete_analysis(analysis_id: UUID, synthesis: SynthesisDep) -> dict[str, bool]:
    if not await synthesis.delete_analysis(analysis_id):
        raise HTTPException(404, detail=f"Analysis {analysis_id} not found")
    return {"deleted": True}

