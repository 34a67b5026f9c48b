"""Event calendar store: dated catalysts per symbol, tagged by source pipeline."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any

import asyncpg
import orjson

from socialpulse.processing.models import CalendarEvent, EventSource
from socialpulse.storage.database import affected_rows

if TYPE_CHECKING:
    from socialpulse.storage.database import Database

_EVENT_COLUMNS = """
    id, ticker_id, symbol, title, description, event_date, date_text, confidence,
    impact_score, expected_impact, event_type, source, source_reference,
    created_at, updated_at
"""

_DELETE_FUTURE_SQL = """
    DELETE FROM event_calendar
    WHERE symbol = $1 AND source = $2 AND event_date >= $3
"""

_INSERT_SQL = """
    INSERT INTO event_calendar (
        ticker_id, symbol, title, description, event_date, date_text, confidence,
        impact_score, expected_impact, event_type, source, source_reference
    )
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12::jsonb)
"""


def _row_to_event(row: asyncpg.Record) -> CalendarEvent:
    data = dict(row)
    ref = data.get("source_reference")
    if isinstance(ref, (str, bytes)):
        data["source_reference"] = orjson.loads(ref)
    return CalendarEvent.model_validate(data)


def _insert_args(e: CalendarEvent) -> tuple[Any, ...]:
    return (
        e.ticker_id,
        e.symbol,
        e.title,
        e.description,
        e.event_date,
        e.date_text,
        e.confidence,
        e.impact_score,
        e.expected_impact,
        e.event_type.value,
        e.source.value,
        orjson.dumps(e.source_reference).decode() if e.source_reference else None,
    )


class EventCalendarStore:
    """Persistence for ``event_calendar``."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def delete_future_by_source(self, symbol: str, source: EventSource, from_date: date) -> int:
        """Delete one pipeline's events dated on or after ``from_date``."""
        status = await self.db.execute(_DELETE_FUTURE_SQL, symbol, source.value, from_date)
        return affected_rows(status)

    async def replace_future_by_source(
        self,
        symbol: str,
        source: EventSource,
        from_date: date,
        events: list[CalendarEvent],
    ) -> int:
        """Swap one pipeline's future events for ``events`` atomically.

        The delete and the insert share a transaction, so a failed insert
        leaves the previous rows in place.

        Returns:
            Number of rows deleted
        """
        async with self.db.transaction() as conn:
            status = await conn.execute(_DELETE_FUTURE_SQL, symbol, source.value, from_date)
            if events:
                await conn.executemany(_INSERT_SQL, [_insert_args(e) for e in events])
        return affected_rows(status)

    async def list_since(self, symbol: str, from_date: date) -> list[CalendarEvent]:
        """Events of any source dated on or after ``from_date``, soonest first."""
        rows = await self.db.fetch(
            f"""
            SELECT {_EVENT_COLUMNS}
            FROM event_calendar
            WHERE symbol = $1 AND event_date >= $2
            ORDER BY event_date ASC
            """,
            symbol,
            from_date,
        )
        return [_row_to_event(r) for r in rows]

    async def list_between(self, symbol: str, start: date, end: date) -> list[CalendarEvent]:
        rows = await self.db.fetch(
            f"""
            SELECT {_EVENT_COLUMNS}
            FROM event_calendar
            WHERE symbol = $1 AND event_date BETWEEN $2 AND $3
            ORDER BY event_date ASC
            """,
            symbol,
            start,
            end,
        )
        return [_row_to_event(r) for r in rows]

    async def insert_many(self, events: list[CalendarEvent]) -> int:
        """Insert a batch of events in one transaction."""
        if not events:
            return 0
        await self.db.executemany(_INSERT_SQL, [_insert_args(e) for e in events])
        return len(events)
