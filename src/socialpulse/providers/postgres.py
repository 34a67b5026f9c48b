"""Collaborators backed by the host application's PostgreSQL tables.

Expected host tables (not owned by socialpulse):
- tickers(id, symbol, name, social_analysis_enabled, social_analysis_enabled_by)
- users(id, tier, credits_balance)
- credit_transactions(user_id, amount, reason, metadata)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import orjson

from socialpulse.core.exceptions import InsufficientCreditsError
from socialpulse.core.logging import get_logger
from socialpulse.providers.base import AnalysisOwner, TickerRef

if TYPE_CHECKING:
    from socialpulse.storage.database import Database

logger = get_logger(__name__)


class PostgresTickerDirectory:
    """``TickerDirectory`` over the ``public.tickers`` table."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def list_tickers_with_analysis_enabled(self) -> list[TickerRef]:
        rows = await self.db.fetch(
            """
            SELECT id, symbol, name
            FROM tickers
            WHERE social_analysis_enabled = TRUE
            ORDER BY symbol
            """
        )
        return [TickerRef(id=r["id"], symbol=r["symbol"], name=r["name"]) for r in rows]

    async def find_by_symbol(self, symbol: str) -> TickerRef | None:
        row = await self.db.fetchrow(
            "SELECT id, symbol, name FROM tickers WHERE upper(symbol) = upper($1)",
            symbol,
        )
        if row is None:
            return None
        return TickerRef(id=row["id"], symbol=row["symbol"], name=row["name"])

    async def get_analysis_owner(self, ticker_id: int) -> AnalysisOwner | None:
        row = await self.db.fetchrow(
            """
            SELECT u.id, u.tier
            FROM tickers t
            JOIN users u ON u.id = t.social_analysis_enabled_by
            WHERE t.id = $1
            """,
            ticker_id,
        )
        if row is None:
            return None
        return AnalysisOwner(user_id=str(row["id"]), plan_tier=row["tier"] or "free")

    async def list_symbols(self) -> list[str]:
        rows = await self.db.fetch("SELECT symbol FROM tickers WHERE symbol IS NOT NULL ORDER BY symbol")
        return [r["symbol"] for r in rows]


class PostgresCreditLedger:
    """``CreditLedger`` over ``users.credits_balance`` with a transaction log."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def get_balance(self, user_id: str) -> float:
        balance = await self.db.fetchval(
            "SELECT credits_balance FROM users WHERE id::text = $1", user_id
        )
        return float(balance) if balance is not None else 0.0

    async def deduct(
        self,
        user_id: str,
        amount: float,
        reason: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Deduct credits and record a negative transaction, atomically.

        Raises:
            InsufficientCreditsError: If the locked balance does not cover ``amount``
        """
        async with self.db.transaction() as conn:
            balance = await conn.fetchval(
                "SELECT credits_balance FROM users WHERE id::text = $1 FOR UPDATE", user_id
            )
            current = float(balance) if balance is not None else 0.0
            if current < amount:
                raise InsufficientCreditsError(
                    f"Insufficient credits for user {user_id}", balance=current, cost=amount
                )
            await conn.execute(
                "UPDATE users SET credits_balance = credits_balance - $2 WHERE id::text = $1",
                user_id,
                amount,
            )
            await conn.execute(
                """
                INSERT INTO credit_transactions (user_id, amount, reason, metadata)
                VALUES ($1::uuid, $2, $3, $4::jsonb)
                """,
                user_id,
                -amount,
                reason,
                orjson.dumps(metadata or {}).decode(),
            )
        logger.info("Credits deducted", user_id=user_id, amount=amount, reason=reason)
