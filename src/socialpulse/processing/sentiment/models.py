"""Data models for sentiment synthesis.

This module defines the schemas for:
- Backend output validation (SentimentSynthesis)
- Analyze call options and window planning
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from socialpulse.processing.common.llm import Quality
from socialpulse.processing.models import Analysis, Highlights, HighlightShape, SentimentLabel


# =============================================================================
# Backend output
# =============================================================================


class SentimentSynthesis(BaseModel):
    """Validated backend output for one synthesis call."""

    sentiment_score: float = Field(ge=-1.0, le=1.0)
    sentiment_label: SentimentLabel
    weighted_sentiment_score: float = Field(ge=-1.0, le=1.0)
    summary: str
    highlights: Highlights
    # Kept raw: individual malformed events are skipped later, not here
    extracted_events: list[dict[str, Any]] = Field(default_factory=list)


# =============================================================================
# Analyze options & window planning
# =============================================================================


class AnalyzeOptions(BaseModel):
    """Caller options for ``SynthesisEngine.analyze``."""

    model: str | None = None
    quality: Quality | None = None
    highlights: HighlightShape = "themes"


class WindowMode(str, Enum):
    """How the next analysis window is chosen."""

    full = "full"
    incremental = "incremental"


@dataclass(frozen=True)
class WindowPlan:
    """Decision for the next synthesis run.

    Attributes:
        mode: Full re-analysis or incremental continuation.
        since: Only posts newer than this are candidates.
        previous: Prior analysis being continued (incremental only).
    """

    mode: WindowMode
    since: datetime
    previous: Analysis | None = None

    @property
    def is_incremental(self) -> bool:
        return self.mode is WindowMode.incremental
