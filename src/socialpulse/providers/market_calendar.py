"""Weekday/holiday market calendar."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date


class HolidayMarketCalendar:
    """``MarketCalendar`` that treats weekends and listed holidays as closed."""

    def __init__(self, holidays: Iterable[date] = ()) -> None:
        self.holidays = frozenset(holidays)

    async def is_trading_day(self, day: date) -> bool:
        return day.weekday() < 5 and day not in self.holidays
