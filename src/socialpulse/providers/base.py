"""Collaborator protocols for the pipeline.

The ingestion and synthesis core references tickers, users and credits by ID
only. These Protocols are the narrow contracts it needs from the host
application, so the backing store can be swapped without touching the engines.

Provider Types:
- TickerDirectory: Tickers, their analysis flag and the user who enabled it
- MarketCalendar: Trading-day checks
- CreditLedger: Balance lookup and deduction
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class TickerRef:
    """A ticker known to the host application."""

    id: int
    symbol: str
    name: str | None = None


@dataclass(frozen=True)
class AnalysisOwner:
    """User who enabled scheduled analysis for a ticker, with their plan tier."""

    user_id: str
    plan_tier: str


@runtime_checkable
class TickerDirectory(Protocol):
    """Protocol for ticker lookups."""

    async def list_tickers_with_analysis_enabled(self) -> list[TickerRef]:
        """Tickers flagged for the scheduled pre-market analysis."""
        ...

    async def find_by_symbol(self, symbol: str) -> TickerRef | None:
        """Look up a ticker by symbol (case-insensitive)."""
        ...

    async def get_analysis_owner(self, ticker_id: int) -> AnalysisOwner | None:
        """User who enabled analysis for the ticker, or None."""
        ...

    async def list_symbols(self) -> list[str]:
        """All tracked symbols (for the post and watcher sync jobs)."""
        ...


@runtime_checkable
class MarketCalendar(Protocol):
    """Protocol for trading-day checks."""

    async def is_trading_day(self, day: date) -> bool: ...


@runtime_checkable
class CreditLedger(Protocol):
    """Protocol for user credit balances."""

    async def get_balance(self, user_id: str) -> float: ...

    async def deduct(
        self,
        user_id: str,
        amount: float,
        reason: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Deduct ``amount`` credits.

        Raises:
            InsufficientCreditsError: If the balance does not cover ``amount``
        """
        ...
