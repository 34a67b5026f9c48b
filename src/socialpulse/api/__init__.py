"""HTTP API: public StockTwits reads, manual triggers and operator jobs."""

from socialpulse.api.router import api_router

__all__ = ["api_router"]
