"""Event calendar: extraction persistence, similarity dedup, AI event search."""

from socialpulse.processing.events.calendar import EventCalendarService
from socialpulse.processing.events.dedup import (
    EventKey,
    normalize_impact,
    parse_event_date,
    similar,
    title_keywords,
)

__all__ = [
    "EventCalendarService",
    "EventKey",
    "normalize_impact",
    "parse_event_date",
    "similar",
    "title_keywords",
]
