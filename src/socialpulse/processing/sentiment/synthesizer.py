"""Sentiment synthesis over stored social posts.

Each run either re-analyzes the full retention window or continues the
previous analysis incrementally:

1. Refresh posts (bounded re-ingestion)
2. Plan the window from the latest analysis (full / incremental)
3. Select the top-engagement posts and encode them compactly
4. Call the generative backend; on failure retry once with fewer posts
5. Persist the analysis, then save extracted events (best-effort)

Incremental runs keep the first run's ``analysis_start`` and accumulate
``posts_analyzed`` so the stored chain always reports its true coverage.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from uuid import UUID

from socialpulse.core.constants import (
    ANALYSIS_SPEND_REASON,
    ANALYSIS_WINDOW_DAYS,
    MAX_POSTS_FOR_PROMPT,
    MIN_POSTS_FOR_FULL_ANALYSIS,
    RETRY_POST_LIMIT,
    SHALLOW_ANALYSIS_THRESHOLD,
)
from socialpulse.core.exceptions import (
    InsufficientCreditsError,
    SynthesisError,
    TickerNotFoundError,
)
from socialpulse.core.logging import get_logger
from socialpulse.ingestion.engine import IngestionEngine
from socialpulse.processing.common.llm import (
    GenerationRequest,
    GenerationResult,
    GenerativeBackend,
    model_credit_cost,
    resolve_quality,
)
from socialpulse.processing.events.calendar import EventCalendarService
from socialpulse.processing.models import Analysis, HighlightShape, Post
from socialpulse.processing.sentiment.compact import encode_posts
from socialpulse.processing.sentiment.models import (
    AnalyzeOptions,
    SentimentSynthesis,
    WindowMode,
    WindowPlan,
)
from socialpulse.processing.sentiment.parsing import parse_synthesis
from socialpulse.providers.base import CreditLedger, TickerDirectory
from socialpulse.storage.analyses import AnalysisStore
from socialpulse.storage.posts import PostStore

logger = get_logger(__name__)


# =============================================================================
# Prompt
# =============================================================================

SYNTHESIS_PROMPT = """You are analyzing StockTwits posts for {symbol}.
{context}
## Posts
Encoded as a table: d=date (YYYY-MM-DD), l=likes, b=post text.
{posts}

## Instructions
1. **sentiment_score** (-1.0 to 1.0): -1.0 = extremely bearish, 0 = neutral, 1.0 = extremely bullish
2. **weighted_sentiment_score** (-1.0 to 1.0): the same, weighting posts by likes as a credibility signal
3. **sentiment_label**: VERY_BULLISH | BULLISH | NEUTRAL | BEARISH | VERY_BEARISH
4. **summary**: 1-2 paragraph synthesis of the social sentiment
5. **highlights**: {highlights_instruction}
6. **extracted_events**: upcoming events mentioned in the posts
   - Merge every mention of the same event into ONE entry with a canonical title
     (e.g. "Q4 Earnings Call", not "earnings next week" and "Q4 call" separately)
   - "date" MUST be YYYY-MM-DD. If no exact date is known, OMIT the event entirely;
     never emit placeholders such as "TBD", "next week" or "Q1"
   - "type": earnings | fda_decision | conference | product_launch | legal | regulatory | analyst | insider_trading | other
   - "impact": 1-10, "confidence": 0.0-1.0

Return ONLY a JSON object with this exact shape:
{{"sentiment_score": 0.0, "weighted_sentiment_score": 0.0, "sentiment_label": "NEUTRAL",
"summary": "...", "highlights": {highlights_shape},
"extracted_events": [{{"title": "...", "date": "YYYY-MM-DD", "type": "...", "impact": 5,
"expected_impact": "...", "confidence": 0.6, "description": "..."}}]}}"""

INCREMENTAL_CONTEXT = """
## Previous Analysis (through {previous_end})
{previous_summary}

The posts below are NEW since that analysis. Update the picture: say what changed,
and carry forward anything from the previous summary that still holds.
"""

_HIGHLIGHT_INSTRUCTIONS: dict[HighlightShape, tuple[str, str]] = {
    "themes": (
        "main topics, most-mentioned names/tickers, and the strongest bullish and bearish arguments",
        '{"topics": ["..."], "top_mentions": ["..."], "bullish_points": ["..."], "bearish_points": ["..."]}',
    ),
    "posts": (
        "up to 5 of the most insightful or influential posts, with why each matters",
        '{"posts": [{"excerpt": "...", "reason": "...", "likes": 0}]}',
    ),
}


def build_prompt(
    symbol: str,
    posts: Sequence[Post],
    highlight_shape: HighlightShape = "themes",
    previous: Analysis | None = None,
) -> str:
    """Build the synthesis prompt, carrying the previous summary forward when given."""
    context = ""
    if previous is not None:
        context = INCREMENTAL_CONTEXT.format(
            previous_end=previous.analysis_end.date().isoformat(),
            previous_summary=previous.summary,
        )
    instruction, shape = _HIGHLIGHT_INSTRUCTIONS[highlight_shape]
    return SYNTHESIS_PROMPT.format(
        symbol=symbol,
        context=context,
        posts=encode_posts(posts),
        highlights_instruction=instruction,
        highlights_shape=shape,
    )


# =============================================================================
# Pure planning helpers
# =============================================================================


def plan_window(
    previous: Analysis | None,
    now: datetime,
    window_days: int = ANALYSIS_WINDOW_DAYS,
    shallow_threshold: int = SHALLOW_ANALYSIS_THRESHOLD,
) -> WindowPlan:
    """Decide between a full window and an incremental continuation.

    Full when there is no previous analysis, it is older than the window,
    or it covered fewer than ``shallow_threshold`` posts.
    """
    horizon = now - timedelta(days=window_days)
    if previous is None or previous.created_at is None or previous.created_at < horizon:
        return WindowPlan(mode=WindowMode.full, since=horizon)
    if previous.posts_analyzed < shallow_threshold:
        return WindowPlan(mode=WindowMode.full, since=horizon)
    return WindowPlan(mode=WindowMode.incremental, since=previous.created_at, previous=previous)


def select_top_posts(posts: Sequence[Post], limit: int = MAX_POSTS_FOR_PROMPT) -> list[Post]:
    """Top ``limit`` posts by likes, newest first among ties."""
    return sorted(posts, key=lambda p: (p.likes_count, p.created_at), reverse=True)[:limit]


def retry_subset(selected: Sequence[Post], limit: int = RETRY_POST_LIMIT) -> list[Post]:
    """A strictly smaller subset of ``selected`` for the degraded retry."""
    if len(selected) > limit:
        return list(selected[:limit])
    return list(selected[: len(selected) // 2])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Engine
# =============================================================================


class SynthesisEngine:
    """Produces windowed, incremental sentiment analyses for symbols."""

    def __init__(
        self,
        ingestion: IngestionEngine,
        posts: PostStore,
        analyses: AnalysisStore,
        events: EventCalendarService,
        backend: GenerativeBackend,
        tickers: TickerDirectory,
        credits: CreditLedger | None = None,
        refresh_pages: int = 50,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.ingestion = ingestion
        self.posts = posts
        self.analyses = analyses
        self.events = events
        self.backend = backend
        self.tickers = tickers
        self.credits = credits
        self.refresh_pages = refresh_pages
        self._clock = clock

    async def analyze(
        self,
        symbol: str,
        user_id: str | None = None,
        options: AnalyzeOptions | None = None,
    ) -> Analysis | None:
        """Run a sentiment synthesis for ``symbol``.

        Args:
            symbol: Ticker symbol
            user_id: Charge this user's credits for the run
            options: Model, quality tier and highlight shape

        Returns:
            The new analysis; the previous one unchanged when an incremental
            window holds no new posts; None when a full window has too few posts

        Raises:
            TickerNotFoundError: Unknown symbol
            InsufficientCreditsError: ``user_id`` cannot cover the model cost
            SynthesisError: Both backend attempts failed
        """
        symbol = symbol.upper()
        options = options or AnalyzeOptions()
        log = logger.bind(symbol=symbol)

        ticker = await self.tickers.find_by_symbol(symbol)
        if ticker is None:
            raise TickerNotFoundError(f"Unknown ticker {symbol}")

        await self.ingestion.ingest_posts(symbol, self.refresh_pages)

        previous = await self.analyses.latest(symbol)
        plan = plan_window(previous, self._clock())
        candidates = await self.posts.list_since(symbol, plan.since)

        if plan.is_incremental:
            if not candidates:
                log.info("No new posts since last analysis, returning it unchanged")
                return plan.previous
        elif len(candidates) < MIN_POSTS_FOR_FULL_ANALYSIS:
            log.info("Insufficient posts for analysis, skipping", posts=len(candidates))
            return None

        if user_id is not None:
            await self._charge(user_id, symbol, options.model)

        selected = select_top_posts(candidates)
        log.info(
            "Running sentiment synthesis",
            mode=plan.mode.value,
            candidates=len(candidates),
            selected=len(selected),
        )
        result, synthesis, used = await self._generate_with_retry(symbol, selected, plan, options)

        previous_chain = plan.previous
        analysis = Analysis(
            ticker_id=ticker.id,
            symbol=symbol,
            analysis_start=previous_chain.analysis_start if previous_chain else plan.since,
            analysis_end=max(p.created_at for p in candidates),
            sentiment_score=synthesis.sentiment_score,
            sentiment_label=synthesis.sentiment_label,
            posts_analyzed=used + (previous_chain.posts_analyzed if previous_chain else 0),
            weighted_sentiment_score=synthesis.weighted_sentiment_score,
            summary=synthesis.summary,
            highlights=synthesis.highlights,
            extracted_events=synthesis.extracted_events,
            model_used=result.models_used[0] if result.models_used else (options.model or "default"),
            tokens_used=result.total_tokens,
        )
        saved = await self.analyses.insert(analysis)
        log.info(
            "Sentiment analysis saved",
            analysis_id=str(saved.id),
            score=saved.sentiment_score,
            label=saved.sentiment_label.value,
            posts_analyzed=saved.posts_analyzed,
        )

        if synthesis.extracted_events:
            try:
                await self.events.save_social_events(
                    symbol, ticker.id, synthesis.extracted_events, analysis_id=saved.id
                )
            except Exception:
                log.exception("Failed to save extracted events")

        return saved

    async def _charge(self, user_id: str, symbol: str, model: str | None) -> None:
        if self.credits is None:
            raise RuntimeError("Credit ledger not configured")
        cost = model_credit_cost(model)
        balance = await self.credits.get_balance(user_id)
        if balance < cost:
            raise InsufficientCreditsError(
                f"Insufficient credits: {cost} required, {balance} available",
                balance=balance,
                cost=cost,
            )
        # No refund if the backend later fails
        await self.credits.deduct(
            user_id, cost, ANALYSIS_SPEND_REASON, {"symbol": symbol, "model": model}
        )

    async def _generate_with_retry(
        self,
        symbol: str,
        selected: list[Post],
        plan: WindowPlan,
        options: AnalyzeOptions,
    ) -> tuple[GenerationResult, SentimentSynthesis, int]:
        """Call the backend, retrying once with a smaller post subset.

        Returns:
            Tuple of (raw result, parsed synthesis, number of posts sent)
        """
        try:
            result, synthesis = await self._generate(symbol, selected, plan, options)
            return result, synthesis, len(selected)
        except Exception as first_error:
            subset = retry_subset(selected)
            logger.warning(
                "Synthesis attempt failed, retrying with fewer posts",
                symbol=symbol,
                error=str(first_error),
                posts=len(selected),
                retry_posts=len(subset),
            )
            if not subset:
                raise SynthesisError(f"Synthesis failed for {symbol}: {first_error}") from first_error

        try:
            result, synthesis = await self._generate(symbol, subset, plan, options)
        except Exception as e:
            logger.error("Synthesis retry failed", symbol=symbol, error=str(e))
            raise SynthesisError(f"Synthesis failed for {symbol} after retry: {e}") from e
        return result, synthesis, len(subset)

    async def _generate(
        self,
        symbol: str,
        posts: list[Post],
        plan: WindowPlan,
        options: AnalyzeOptions,
    ) -> tuple[GenerationResult, SentimentSynthesis]:
        prompt = build_prompt(symbol, posts, options.highlights, plan.previous)
        result = await self.backend.generate(
            GenerationRequest(
                prompt=prompt,
                tickers=[symbol],
                quality=resolve_quality(options.model, options.quality),
                model=options.model,
            )
        )
        return result, parse_synthesis(result.text, options.highlights)

    # -------------------------------------------------------------------------
    # Reads & maintenance
    # -------------------------------------------------------------------------

    async def latest(self, symbol: str) -> Analysis | None:
        return await self.analyses.latest(symbol.upper())

    async def history(self, symbol: str, limit: int = 30) -> list[Analysis]:
        return await self.analyses.history(symbol.upper(), limit)

    async def delete_analysis(self, analysis_id: UUID) -> bool:
        deleted = await self.analyses.delete(analysis_id)
        logger.info("Analysis deleted", analysis_id=str(analysis_id), deleted=deleted)
        return deleted

    async def cleanup_old_analyses(self, age_days: int = 30) -> int:
        """Delete analyses older than ``age_days``. Returns the number removed."""
        cutoff = self._clock() - timedelta(days=age_days)
        removed = await self.analyses.delete_older_than(cutoff)
        logger.info("Old analyses cleaned up", age_days=age_days, removed=removed)
        return removed
