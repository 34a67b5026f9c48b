"""Data ingestion layer: StockTwits symbol stream, transports, crawl engine."""

from socialpulse.ingestion.engine import (
    IngestionEngine,
    IngestResult,
    InFlightRegistry,
    StopReason,
    SyncResult,
)
from socialpulse.ingestion.stocktwits import RawMessage, StockTwitsClient, StreamPage
from socialpulse.ingestion.transport import (
    CurlTransport,
    FallbackTransport,
    FetchTransport,
    HttpxTransport,
)

__all__ = [
    "CurlTransport",
    "FallbackTransport",
    "FetchTransport",
    "HttpxTransport",
    "InFlightRegistry",
    "IngestResult",
    "IngestionEngine",
    "RawMessage",
    "StockTwitsClient",
    "StopReason",
    "StreamPage",
    "SyncResult",
]
