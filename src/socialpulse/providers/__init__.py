"""Collaborator providers: ticker directory, market calendar, credit ledger."""

from socialpulse.providers.base import (
    AnalysisOwner,
    CreditLedger,
    MarketCalendar,
    TickerDirectory,
    TickerRef,
)
from socialpulse.providers.market_calendar import HolidayMarketCalendar
from socialpulse.providers.postgres import PostgresCreditLedger, PostgresTickerDirectory

__all__ = [
    "AnalysisOwner",
    "CreditLedger",
    "HolidayMarketCalendar",
    "MarketCalendar",
    "PostgresCreditLedger",
    "PostgresTickerDirectory",
    "TickerDirectory",
    "TickerRef",
]
