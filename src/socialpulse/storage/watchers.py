"""Watcher store: append-only time series of watcher counts."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from socialpulse.processing.models import WatcherSnapshot

if TYPE_CHECKING:
    from socialpulse.storage.database import Database


class WatcherStore:
    """Persistence for ``stocktwits_watchers``."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def append(self, symbol: str, count: int, timestamp: datetime) -> WatcherSnapshot:
        await self.db.execute(
            "INSERT INTO stocktwits_watchers (symbol, count, timestamp) VALUES ($1, $2, $3)",
            symbol,
            count,
            timestamp,
        )
        return WatcherSnapshot(symbol=symbol, count=count, timestamp=timestamp)

    async def history(self, symbol: str) -> list[WatcherSnapshot]:
        """All snapshots for a symbol, oldest first."""
        rows = await self.db.fetch(
            """
            SELECT symbol, count, timestamp
            FROM stocktwits_watchers
            WHERE symbol = $1
            ORDER BY timestamp ASC
            """,
            symbol,
        )
        return [WatcherSnapshot.model_validate(dict(r)) for r in rows]

    async def latest(self, symbol: str) -> WatcherSnapshot | None:
        row = await self.db.fetchrow(
            """
            SELECT symbol, count, timestamp
            FROM stocktwits_watchers
            WHERE symbol = $1
            ORDER BY timestamp DESC
            LIMIT 1
            """,
            symbol,
        )
        return WatcherSnapshot.model_validate(dict(row)) if row else None
