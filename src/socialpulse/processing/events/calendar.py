"""Event calendar service: persist deduplicated events from synthesis and search.

Social-derived events replace this pipeline's own future rows on every run;
against events from other sources they are deduplicated by similarity, not
identity (see ``dedup.similar``).
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from pydantic import ValidationError

from socialpulse.core.constants import (
    EVENT_LOOKBACK_DAYS,
    SOCIAL_EVENT_DEFAULT_CONFIDENCE,
    UPCOMING_EVENTS_DEFAULT_DAYS,
)
from socialpulse.core.exceptions import BackendParseError, LLMError
from socialpulse.core.logging import get_logger
from socialpulse.processing.common.json_extract import load_json_object
from socialpulse.processing.common.llm import GenerationRequest, GenerativeBackend
from socialpulse.processing.events.dedup import (
    EventKey,
    normalize_impact,
    parse_event_date,
    similar,
)
from socialpulse.processing.models import (
    CalendarEvent,
    EventSource,
    EventType,
    ExtractedEvent,
    SearchedEvent,
)
from socialpulse.providers.base import TickerDirectory
from socialpulse.storage.events import EventCalendarStore

logger = get_logger(__name__)

CONFIDENCE_WORDS: dict[str, float] = {"high": 0.95, "medium": 0.7, "low": 0.4}

EVENT_SEARCH_PROMPT = """You are a financial research assistant. Find upcoming events and catalysts
for {symbol} ({company}).

## Search Focus
1. Earnings dates
2. FDA/regulatory decisions
3. Upcoming conferences and presentations
4. Product launches or announcements
5. Legal proceedings and deadlines
6. Analyst days and investor meetings

## Instructions
- Focus on events within the next {days} days
- Use a strict YYYY-MM-DD date; omit an event entirely if no exact date is known
- Merge mentions of the same event into one entry with a canonical title
- Rate your confidence in each event as high, medium or low

Return ONLY a JSON object:
{{"events": [{{"title": "...", "description": "...", "date": "YYYY-MM-DD",
"type": "earnings|fda_decision|conference|product_launch|legal|regulatory|analyst|insider_trading|other",
"confidence": "high|medium|low", "impact_score": 1-10, "expected_impact": "...",
"source_url": "..."}}]}}"""


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _superseded(event: CalendarEvent, today: date) -> bool:
    """This pipeline's own future rows, which every run replaces."""
    return (
        event.source == EventSource.stocktwits
        and event.event_date is not None
        and event.event_date >= today
    )


def _search_confidence(value: Any) -> float:
    if isinstance(value, str):
        return CONFIDENCE_WORDS.get(value.strip().lower(), CONFIDENCE_WORDS["low"])
    if isinstance(value, (int, float)) and not isinstance(value, bool) and 0 <= value <= 1:
        return float(value)
    return CONFIDENCE_WORDS["low"]


class EventCalendarService:
    """Writes and reads calendar events for symbols."""

    def __init__(
        self,
        store: EventCalendarStore,
        backend: GenerativeBackend | None = None,
        tickers: TickerDirectory | None = None,
        today: Callable[[], date] = _today,
    ) -> None:
        self.store = store
        self.backend = backend
        self.tickers = tickers
        self._today = today

    async def save_social_events(
        self,
        symbol: str,
        ticker_id: int,
        events: list[dict[str, Any]],
        analysis_id: UUID | None = None,
    ) -> list[CalendarEvent]:
        """Replace this pipeline's future events for ``symbol`` with deduplicated ``events``.

        Malformed events are logged and skipped individually.

        Returns:
            The events that were inserted
        """
        log = logger.bind(symbol=symbol)
        reference: dict[str, Any] = {"pipeline": "stocktwits_analysis"}
        if analysis_id is not None:
            reference["analysis_id"] = str(analysis_id)

        candidates: list[CalendarEvent] = []
        for raw in events:
            try:
                extracted = ExtractedEvent.model_validate(raw)
            except ValidationError as e:
                log.warning("Skipping malformed event", title=raw.get("title"), error=str(e))
                continue
            event_date = parse_event_date(extracted.date)
            if event_date is None:
                log.warning("Skipping event without a valid date", title=extracted.title, date=extracted.date)
                continue
            candidates.append(
                CalendarEvent(
                    ticker_id=ticker_id,
                    symbol=symbol,
                    title=extracted.title,
                    description=extracted.description,
                    event_date=event_date,
                    date_text=extracted.date,
                    confidence=(
                        extracted.confidence
                        if extracted.confidence is not None
                        else SOCIAL_EVENT_DEFAULT_CONFIDENCE
                    ),
                    impact_score=normalize_impact(extracted.impact),
                    expected_impact=extracted.expected_impact,
                    event_type=EventType.coerce(extracted.type),
                    source=EventSource.stocktwits,
                    source_reference=reference,
                )
            )

        today = self._today()
        existing = [e for e in await self._recent_events(symbol, today) if not _superseded(e, today)]
        inserted = self._deduplicate(symbol, candidates, existing)
        deleted = await self.store.replace_future_by_source(
            symbol, EventSource.stocktwits, today, inserted
        )
        if deleted:
            log.debug("Superseded previous social events", deleted=deleted)
        log.info(
            "Social events saved",
            extracted=len(events),
            valid=len(candidates),
            inserted=len(inserted),
        )
        return inserted

    async def _recent_events(self, symbol: str, today: date) -> list[CalendarEvent]:
        return await self.store.list_since(symbol, today - timedelta(days=EVENT_LOOKBACK_DAYS))

    def _deduplicate(
        self, symbol: str, candidates: list[CalendarEvent], existing: list[CalendarEvent]
    ) -> list[CalendarEvent]:
        """Drop candidates similar to an existing event or to an earlier candidate."""
        seen = [EventKey(e.title, e.event_date) for e in existing]

        survivors: list[CalendarEvent] = []
        for event in candidates:
            key = EventKey(event.title, event.event_date)
            match = next((s for s in seen if similar(key, s)), None)
            if match is not None:
                logger.info(
                    "Duplicate event skipped",
                    symbol=symbol,
                    title=event.title,
                    event_date=str(event.event_date),
                    matches=match.title,
                )
                continue
            survivors.append(event)
            # Catch near-duplicates within the same batch too
            seen.append(key)
        return survivors

    async def search_upcoming_events(
        self, symbol: str, days: int = UPCOMING_EVENTS_DEFAULT_DAYS
    ) -> list[CalendarEvent]:
        """Ask the backend for upcoming catalysts and store the new ones.

        Failures are logged and return an empty list.
        """
        if self.backend is None or self.tickers is None:
            raise RuntimeError("Event search requires a backend and a ticker directory")

        log = logger.bind(symbol=symbol)
        ticker = await self.tickers.find_by_symbol(symbol)
        if ticker is None:
            log.warning("Ticker not found for event search")
            return []

        prompt = EVENT_SEARCH_PROMPT.format(symbol=symbol, company=ticker.name or symbol, days=days)
        try:
            result = await self.backend.generate(
                GenerationRequest(prompt=prompt, tickers=[symbol], quality="medium")
            )
            payload = load_json_object(result.text)
            if payload is None:
                raise BackendParseError("No JSON object in event search response")
        except (LLMError, BackendParseError) as e:
            log.error("Event search failed", error=str(e))
            return []

        items = payload.get("events")
        candidates: list[CalendarEvent] = []
        for item in items if isinstance(items, list) else []:
            if not isinstance(item, dict):
                log.warning("Skipping non-object search event")
                continue
            try:
                searched = SearchedEvent.model_validate(item)
            except ValidationError as e:
                log.warning("Skipping malformed search event", title=item.get("title"), error=str(e))
                continue
            event_date = parse_event_date(searched.date)
            if event_date is None:
                log.warning("Skipping search event without a valid date", title=searched.title)
                continue
            candidates.append(
                CalendarEvent(
                    ticker_id=ticker.id,
                    symbol=symbol,
                    title=searched.title,
                    description=searched.description,
                    event_date=event_date,
                    date_text=searched.date_text or searched.date,
                    confidence=_search_confidence(searched.confidence),
                    impact_score=normalize_impact(searched.impact_score),
                    expected_impact=searched.expected_impact,
                    event_type=EventType.coerce(searched.type),
                    source=EventSource.ai_search,
                    source_reference={"url": searched.source_url},
                )
            )

        today = self._today()
        inserted = self._deduplicate(symbol, candidates, await self._recent_events(symbol, today))
        await self.store.insert_many(inserted)
        log.info("Event search complete", found=len(candidates), inserted=len(inserted))
        return inserted

    async def get_upcoming_events(
        self, symbol: str, days: int = UPCOMING_EVENTS_DEFAULT_DAYS
    ) -> list[CalendarEvent]:
        """Events dated between today and ``days`` from now."""
        today = self._today()
        return await self.store.list_between(symbol, today, today + timedelta(days=days))

    async def get_future_events(self, symbol: str) -> list[CalendarEvent]:
        """All events dated today or later."""
        return await self.store.list_since(symbol, self._today())
