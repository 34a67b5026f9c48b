"""Recover and validate structured synthesis output from raw backend text.

Backends often wrap JSON in prose or markdown fences, so the response is
scanned for the first balanced candidate that decodes to a JSON object.
Validation fails closed: anything that does not fit the expected shape raises
``BackendParseError`` so the caller can retry with degraded input.
"""

from typing import Any

from pydantic import ValidationError

from socialpulse.core.exceptions import BackendParseError
from socialpulse.processing.common.json_extract import load_json_object
from socialpulse.processing.models import HighlightShape, SentimentLabel
from socialpulse.processing.sentiment.models import SentimentSynthesis

_THEME_KEYS = ("topics", "top_mentions", "bullish_points", "bearish_points")


def _first(data: dict[str, Any], *keys: str) -> Any:
    """Value of the first key present with a non-null value."""
    return next((data[k] for k in keys if data.get(k) is not None), None)


def _normalize_label(value: Any, score: float) -> SentimentLabel:
    if isinstance(value, str):
        normalized = value.strip().upper().replace(" ", "_").replace("-", "_")
        try:
            return SentimentLabel(normalized)
        except ValueError:
            pass
    return SentimentLabel.from_score(score)


def _normalize_highlights(value: Any) -> dict[str, Any]:
    """Tag a highlight payload with its shape (``themes`` or ``posts``)."""
    if isinstance(value, list):
        posts = []
        for item in value:
            if isinstance(item, str):
                posts.append({"excerpt": item})
            elif isinstance(item, dict):
                excerpt = item.get("excerpt") or item.get("text") or item.get("body") or ""
                posts.append({"excerpt": excerpt, "reason": item.get("reason") or "", "likes": item.get("likes")})
            else:
                raise BackendParseError(f"Unrecognized highlight entry: {item!r}")
        return {"kind": "posts", "posts": posts}

    if isinstance(value, dict):
        if "kind" in value:
            return value
        if "posts" in value:
            return _normalize_highlights(value["posts"])
        if any(key in value for key in _THEME_KEYS):
            return {"kind": "themes", **{k: value.get(k) or [] for k in _THEME_KEYS}}

    raise BackendParseError("Highlights missing or of unknown shape")


def parse_synthesis(text: str, highlight_shape: HighlightShape = "themes") -> SentimentSynthesis:
    """Parse raw backend text into a validated ``SentimentSynthesis``.

    Accepts the key aliases backends tend to produce (``label``,
    ``weighted_sentiment``, ``events``) and converts a legacy 0..1
    ``bullishness`` score onto the canonical -1..1 range.

    Raises:
        BackendParseError: No decodable JSON object, or a shape mismatch
    """
    data = load_json_object(text)
    if data is None:
        raise BackendParseError("No JSON object found in backend response")

    score = data.get("sentiment_score")
    if score is None and data.get("bullishness") is not None:
        try:
            score = 2 * float(data["bullishness"]) - 1
        except (TypeError, ValueError) as e:
            raise BackendParseError(f"Invalid bullishness: {data['bullishness']!r}") from e
    if score is None:
        raise BackendParseError("Backend response has no sentiment score")
    try:
        score = float(score)
    except (TypeError, ValueError) as e:
        raise BackendParseError(f"Invalid sentiment score: {score!r}") from e

    weighted = _first(data, "weighted_sentiment_score", "weighted_sentiment")
    highlights = _normalize_highlights(data.get("highlights"))
    if highlights.get("kind") != highlight_shape:
        raise BackendParseError(
            f"Expected {highlight_shape} highlights, got {highlights.get('kind')}"
        )

    events = _first(data, "extracted_events", "events") or []
    if not isinstance(events, list):
        raise BackendParseError("extracted_events must be a list")

    try:
        return SentimentSynthesis.model_validate(
            {
                "sentiment_score": score,
                "sentiment_label": _normalize_label(_first(data, "sentiment_label", "label"), score),
                "weighted_sentiment_score": score if weighted is None else weighted,
                "summary": data.get("summary") or "",
                "highlights": highlights,
                "extracted_events": [e for e in events if isinstance(e, dict)],
            }
        )
    except ValidationError as e:
        raise BackendParseError(f"Backend output failed validation: {e}") from e
