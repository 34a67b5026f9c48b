"""Storage layer: PostgreSQL (asyncpg)."""

from socialpulse.storage.analyses import AnalysisStore
from socialpulse.storage.database import Database, close_database, get_database, init_database
from socialpulse.storage.events import EventCalendarStore
from socialpulse.storage.posts import PostStore
from socialpulse.storage.watchers import WatcherStore

__all__ = [
    "AnalysisStore",
    "Database",
    "EventCalendarStore",
    "PostStore",
    "WatcherStore",
    "close_database",
    "get_database",
    "init_database",
]
