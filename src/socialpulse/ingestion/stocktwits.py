"""StockTwits symbol-stream client.

Parses ``/streams/symbol/{SYMBOL}.json`` pages into plain dataclasses. Pagination
uses the ``max`` query parameter: each subsequent request asks for messages
older than the oldest message ID seen on the current page.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from socialpulse.core.constants import STREAM_PATH
from socialpulse.ingestion.transport import FetchTransport

logger = structlog.get_logger(__name__)

# NUL plus C0/C1 control characters, keeping \t \n \r
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def sanitize_body(text: str | None) -> str:
    """Strip NUL and control characters that Postgres text columns reject."""
    if not text:
        return ""
    return _CONTROL_CHARS.sub("", text)


def parse_stocktwits_timestamp(timestamp_str: str | None) -> datetime:
    """Parse an ISO-8601 timestamp such as ``2025-01-27T14:03:11Z``."""
    if not timestamp_str:
        return datetime.now(timezone.utc)

    try:
        parsed = datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("unknown_timestamp_format", timestamp=timestamp_str)
        return datetime.now(timezone.utc)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class RawMessage:
    """One message from the symbol stream, before persistence."""

    id: int
    username: str
    body: str
    likes: int
    followers: int
    created_at: datetime


@dataclass
class StreamPage:
    """A single page of the symbol stream."""

    messages: list[RawMessage]
    watcher_count: int | None = None
    cursor: int | None = None  # oldest message ID on this page
    more: bool = False

    @property
    def oldest_created_at(self) -> datetime | None:
        if not self.messages:
            return None
        return min(m.created_at for m in self.messages)


def _as_count(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def parse_message(data: dict[str, Any]) -> RawMessage:
    """Parse one raw message dict.

    Raises:
        KeyError, TypeError, ValueError: If the message has no usable ID
    """
    user = data.get("user") or {}
    likes = data.get("likes") or {}
    return RawMessage(
        id=int(data["id"]),
        username=str(user.get("username") or "unknown"),
        body=sanitize_body(data.get("body")),
        likes=_as_count(likes.get("total")),
        followers=_as_count(user.get("followers")),
        created_at=parse_stocktwits_timestamp(data.get("created_at")),
    )


def parse_watcher_count(data: dict[str, Any]) -> int | None:
    """``symbol.watchlist_count`` from a stream payload, or None if missing/malformed."""
    symbol = data.get("symbol")
    if not isinstance(symbol, dict):
        return None
    count = symbol.get("watchlist_count")
    if isinstance(count, bool) or not isinstance(count, (int, float, str)):
        return None
    try:
        value = int(count)
    except ValueError:
        return None
    return value if value >= 0 else None


@dataclass
class StockTwitsClient:
    """Reads the public StockTwits symbol stream through a ``FetchTransport``."""

    transport: FetchTransport
    base_url: str = "https://api.stocktwits.com/api/2"

    _symbol_path: str = field(default=STREAM_PATH, init=False, repr=False)

    def stream_url(self, symbol: str) -> str:
        return self.base_url.rstrip("/") + self._symbol_path.format(symbol=symbol.upper())

    async def _get_stream(self, symbol: str, cursor: int | None = None) -> dict[str, Any]:
        params = {"max": cursor} if cursor is not None else None
        return await self.transport.get_json(self.stream_url(symbol), params)

    async def fetch_page(self, symbol: str, cursor: int | None = None) -> StreamPage:
        """Fetch one page of messages, newest first.

        Args:
            symbol: Ticker symbol
            cursor: Only return messages older than this message ID

        Returns:
            The parsed page; malformed messages are dropped
        """
        data = await self._get_stream(symbol, cursor)
        log = logger.bind(symbol=symbol, cursor=cursor)

        messages: list[RawMessage] = []
        for raw in data.get("messages") or []:
            if not isinstance(raw, dict):
                log.warning("message_not_object", kind=type(raw).__name__)
                continue
            try:
                messages.append(parse_message(raw))
            except (KeyError, TypeError, ValueError) as e:
                log.warning("message_parse_error", error=str(e), message_id=raw.get("id"))
                continue

        page_cursor = min((m.id for m in messages), default=None)
        upstream_cursor = data.get("cursor") or {}
        more = bool(upstream_cursor.get("more", bool(messages)))

        log.debug("fetched_page", count=len(messages), next_cursor=page_cursor, more=more)
        return StreamPage(
            messages=messages,
            watcher_count=parse_watcher_count(data),
            cursor=page_cursor,
            more=more,
        )

    async def fetch_watcher_count(self, symbol: str) -> int | None:
        """Current watcher count for a symbol, or None if the payload lacks it."""
        data = await self._get_stream(symbol)
        count = parse_watcher_count(data)
        if count is None:
            logger.warning("watcher_count_missing", symbol=symbol)
        return count

    async def close(self) -> None:
        await self.transport.close()
