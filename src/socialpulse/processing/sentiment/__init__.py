"""Sentiment synthesis: window planning, compact prompting, retry/degrade, parsing."""

from socialpulse.processing.sentiment.compact import clean_text, encode_posts
from socialpulse.processing.sentiment.models import (
    AnalyzeOptions,
    SentimentSynthesis,
    WindowMode,
    WindowPlan,
)
from socialpulse.processing.sentiment.parsing import parse_synthesis
from socialpulse.processing.sentiment.synthesizer import (
    SynthesisEngine,
    build_prompt,
    plan_window,
    retry_subset,
    select_top_posts,
)

__all__ = [
    "AnalyzeOptions",
    "SentimentSynthesis",
    "SynthesisEngine",
    "WindowMode",
    "WindowPlan",
    "build_prompt",
    "clean_text",
    "encode_posts",
    "parse_synthesis",
    "plan_window",
    "retry_subset",
    "select_top_posts",
]
