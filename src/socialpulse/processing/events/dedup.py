"""Fuzzy duplicate detection for calendar events.

Events extracted from social chatter name the same catalyst in many ways
("Q4 Earnings Call", "Earnings Call Q4", "earnings call for Q4") and with
loose dates. Two events are treated as the same when their dates are close
and their title keywords overlap enough.

All functions here are pure.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from socialpulse.core.constants import (
    EVENT_DATE_TOLERANCE_DAYS,
    EVENT_KEYWORD_OVERLAP_RATIO,
    EVENT_MIN_KEYWORD_LENGTH,
    EVENT_MIN_SHARED_KEYWORDS,
)

STOPWORDS: frozenset[str] = frozenset(
    {
        "the", "and", "for", "with", "from", "into", "onto", "over", "upon",
        "its", "their", "this", "that", "will", "are", "was", "has", "have",
        "expected", "upcoming", "scheduled", "date", "announcement", "inc", "corp",
    }
)  # fmt: skip

_NON_WORD = re.compile(r"[^a-z0-9]+")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class EventKey:
    """The parts of an event that identity is judged on."""

    title: str
    event_date: date | None


def normalize_title(title: str) -> str:
    return _NON_WORD.sub(" ", title.lower()).strip()


def title_keywords(title: str, min_length: int = EVENT_MIN_KEYWORD_LENGTH) -> frozenset[str]:
    """Lower-cased, punctuation-free, stopword-filtered tokens of at least ``min_length`` chars."""
    return frozenset(
        token
        for token in normalize_title(title).split()
        if len(token) >= min_length and token not in STOPWORDS
    )


def similar(
    a: EventKey,
    b: EventKey,
    *,
    max_day_gap: int = EVENT_DATE_TOLERANCE_DAYS,
    min_overlap_ratio: float = EVENT_KEYWORD_OVERLAP_RATIO,
    min_shared_keywords: int = EVENT_MIN_SHARED_KEYWORDS,
) -> bool:
    """True when candidate ``a`` duplicates existing event ``b``.

    Dates must be within ``max_day_gap`` days, and the shared title keywords
    must cover ``min_overlap_ratio`` of ``a``'s keywords or number at least
    ``min_shared_keywords``. Undated events never match. A title with no
    usable keywords matches only an identical normalized title.
    """
    if a.event_date is None or b.event_date is None:
        return False
    if abs((a.event_date - b.event_date).days) > max_day_gap:
        return False

    keywords_a = title_keywords(a.title)
    if not keywords_a:
        return normalize_title(a.title) == normalize_title(b.title)

    shared = keywords_a & title_keywords(b.title)
    if len(shared) >= min_shared_keywords:
        return True
    return len(shared) / len(keywords_a) >= min_overlap_ratio


def normalize_impact(value: Any) -> int | None:
    """Map a backend impact score onto 1..10.

    Fractions in (0, 1) are treated as a 0..1 scale and multiplied by 10.
    Rounds half-up, then clamps.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None

    if 0 < number < 1:
        number *= 10
    rounded = int(number.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(1, min(10, rounded))


def parse_event_date(value: Any) -> date | None:
    """Parse a strict ``YYYY-MM-DD`` date; anything fuzzier returns None."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _ISO_DATE.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None
