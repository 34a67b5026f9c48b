"""Domain models shared by ingestion, synthesis and storage.

These models define the persisted shapes of the pipeline:
- Social posts and watcher-count snapshots (ingestion)
- Sentiment analyses with their highlight shapes (synthesis)
- Calendar events extracted from chatter or searched for (event calendar)
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Ingestion
# =============================================================================


class Post(BaseModel):
    """A single upstream social post. The upstream message ID is the idempotency key."""

    id: int
    symbol: str
    username: str
    body: str
    likes_count: int = Field(default=0, ge=0)
    user_followers_count: int = Field(default=0, ge=0)
    created_at: datetime  # original post time
    ingested_at: datetime | None = None


class WatcherSnapshot(BaseModel):
    """Timestamped count of accounts watching a symbol."""

    symbol: str
    count: int = Field(ge=0)
    timestamp: datetime


class DailyVolume(BaseModel):
    """Number of stored posts per calendar day."""

    day: date
    count: int


# =============================================================================
# Sentiment
# =============================================================================


class SentimentLabel(str, Enum):
    """Bucketed sentiment classification."""

    very_bullish = "VERY_BULLISH"
    bullish = "BULLISH"
    neutral = "NEUTRAL"
    bearish = "BEARISH"
    very_bearish = "VERY_BEARISH"

    @classmethod
    def from_score(cls, score: float) -> SentimentLabel:
        """Bucket a -1.0..1.0 score."""
        if score >= 0.6:
            return cls.very_bullish
        if score >= 0.2:
            return cls.bullish
        if score <= -0.6:
            return cls.very_bearish
        if score <= -0.2:
            return cls.bearish
        return cls.neutral


class ThemeHighlights(BaseModel):
    """Highlights grouped into topics and bull/bear arguments."""

    kind: Literal["themes"] = "themes"
    topics: list[str] = Field(default_factory=list)
    top_mentions: list[str] = Field(default_factory=list)
    bullish_points: list[str] = Field(default_factory=list)
    bearish_points: list[str] = Field(default_factory=list)


class PostHighlight(BaseModel):
    """One influential post called out by the model."""

    excerpt: str
    reason: str = ""
    likes: int | None = None


class PostHighlights(BaseModel):
    """Highlights as a list of individual posts."""

    kind: Literal["posts"] = "posts"
    posts: list[PostHighlight] = Field(default_factory=list)


Highlights = Annotated[ThemeHighlights | PostHighlights, Field(discriminator="kind")]
HighlightShape = Literal["themes", "posts"]


class Analysis(BaseModel):
    """One persisted sentiment-synthesis run.

    Incremental runs keep the first run's ``analysis_start`` and accumulate
    ``posts_analyzed``; ``analysis_end`` advances to the newest post seen.
    """

    id: UUID | None = None
    ticker_id: int
    symbol: str
    analysis_start: datetime
    analysis_end: datetime
    sentiment_score: float = Field(ge=-1.0, le=1.0)
    sentiment_label: SentimentLabel
    posts_analyzed: int = Field(ge=0)
    weighted_sentiment_score: float = Field(ge=-1.0, le=1.0)
    summary: str
    highlights: Highlights
    extracted_events: list[dict[str, Any]] = Field(default_factory=list)
    model_used: str
    tokens_used: int | None = None
    created_at: datetime | None = None


# =============================================================================
# Event Calendar
# =============================================================================


class EventType(str, Enum):
    """Kind of calendar event."""

    earnings = "earnings"
    fda_decision = "fda_decision"
    conference = "conference"
    product_launch = "product_launch"
    legal = "legal"
    regulatory = "regulatory"
    analyst = "analyst"
    insider_trading = "insider_trading"
    other = "other"

    @classmethod
    def coerce(cls, value: str | None) -> EventType:
        """Map free-form model output onto a known type, defaulting to other."""
        if not value:
            return cls.other
        normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
        if normalized in ("regulatory_decision", "fda"):
            return cls.fda_decision
        try:
            return cls(normalized)
        except ValueError:
            return cls.other


class EventSource(str, Enum):
    """Pipeline that produced a calendar event."""

    stocktwits = "stocktwits"
    ai_search = "ai_search"
    risk_analysis = "risk_analysis"
    manual = "manual"


class ExtractedEvent(BaseModel):
    """One upcoming event mentioned in the chatter, as returned by the backend."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    title: str = Field(min_length=1)
    date: str | None = None  # strict YYYY-MM-DD, validated downstream
    type: str | None = None
    impact: float | None = None
    expected_impact: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    description: str | None = None


class SearchedEvent(BaseModel):
    """One event returned by the upcoming-event search.

    ``confidence`` may be a word (high/medium/low) or a 0..1 number and
    ``impact_score`` any numeric form; both are normalized downstream.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    title: str = Field(min_length=1)
    description: str | None = None
    date: str | None = None
    date_text: str | None = None
    type: str | None = None
    confidence: Any = None
    impact_score: Any = None
    expected_impact: str | None = None
    source_url: str | None = None


class CalendarEvent(BaseModel):
    """A dated (or loosely dated) catalyst tied to a symbol."""

    id: UUID | None = None
    ticker_id: int
    symbol: str
    title: str
    description: str | None = None
    event_date: date | None = None
    date_text: str | None = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    impact_score: int | None = Field(default=None, ge=1, le=10)
    expected_impact: str | None = None
    event_type: EventType = EventType.other
    source: EventSource
    source_reference: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
