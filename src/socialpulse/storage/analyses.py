"""Analysis store: one row per sentiment-synthesis run."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import asyncpg
import orjson

from socialpulse.processing.models import Analysis
from socialpulse.storage.database import affected_rows

if TYPE_CHECKING:
    from socialpulse.storage.database import Database

_ANALYSIS_COLUMNS = """
    id, ticker_id, symbol, analysis_start, analysis_end, sentiment_score,
    sentiment_label, posts_analyzed, weighted_sentiment_score, summary,
    highlights, extracted_events, model_used, tokens_used, created_at
"""


def _load_json(value: Any) -> Any:
    # jsonb comes back as text unless a codec is registered on the connection
    if isinstance(value, (str, bytes)):
        return orjson.loads(value)
    return value


def _row_to_analysis(row: asyncpg.Record) -> Analysis:
    data = dict(row)
    data["highlights"] = _load_json(data["highlights"])
    data["extracted_events"] = _load_json(data["extracted_events"]) or []
    return Analysis.model_validate(data)


class AnalysisStore:
    """Persistence for ``stocktwits_analyses``."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def latest(self, symbol: str) -> Analysis | None:
        """Most recently created analysis for a symbol."""
        row = await self.db.fetchrow(
            f"""
            SELECT {_ANALYSIS_COLUMNS}
            FROM stocktwits_analyses
            WHERE symbol = $1
            ORDER BY created_at DESC
            LIMIT 1
            """,
            symbol,
        )
        return _row_to_analysis(row) if row else None

    async def history(self, symbol: str, limit: int = 30) -> list[Analysis]:
        rows = await self.db.fetch(
            f"""
            SELECT {_ANALYSIS_COLUMNS}
            FROM stocktwits_analyses
            WHERE symbol = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            symbol,
            limit,
        )
        return [_row_to_analysis(r) for r in rows]

    async def get(self, analysis_id: UUID) -> Analysis | None:
        row = await self.db.fetchrow(
            f"SELECT {_ANALYSIS_COLUMNS} FROM stocktwits_analyses WHERE id = $1",
            analysis_id,
        )
        return _row_to_analysis(row) if row else None

    async def insert(self, analysis: Analysis) -> Analysis:
        """Insert an analysis and return it with the generated ID and timestamp."""
        row = await self.db.fetchrow(
            f"""
            INSERT INTO stocktwits_analyses (
                ticker_id, symbol, analysis_start, analysis_end, sentiment_score,
                sentiment_label, posts_analyzed, weighted_sentiment_score, summary,
                highlights, extracted_events, model_used, tokens_used
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10::jsonb, $11::jsonb, $12, $13)
            RETURNING {_ANALYSIS_COLUMNS}
            """,
            analysis.ticker_id,
            analysis.symbol,
            analysis.analysis_start,
            analysis.analysis_end,
            analysis.sentiment_score,
            analysis.sentiment_label.value,
            analysis.posts_analyzed,
            analysis.weighted_sentiment_score,
            analysis.summary,
            orjson.dumps(analysis.highlights.model_dump()).decode(),
            orjson.dumps(analysis.extracted_events).decode(),
            analysis.model_used,
            analysis.tokens_used,
        )
        if row is None:
            raise RuntimeError("INSERT ... RETURNING produced no row")
        return _row_to_analysis(row)

    async def delete(self, analysis_id: UUID) -> bool:
        status = await self.db.execute("DELETE FROM stocktwits_analyses WHERE id = $1", analysis_id)
        return affected_rows(status) > 0

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete analyses created before ``cutoff``. Returns the number removed."""
        status = await self.db.execute(
            "DELETE FROM stocktwits_analyses WHERE created_at < $1", cutoff
        )
        return affected_rows(status)
