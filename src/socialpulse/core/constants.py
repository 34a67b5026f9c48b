"""Application-wide constants.

These are fixed values that don't change between environments.
For configurable values, see config.py Settings.
"""

# ─────────────────────────────────────────────────────────────
# Upstream feed (StockTwits)
# ─────────────────────────────────────────────────────────────
STREAM_PATH = "/streams/symbol/{symbol}.json"
BLOCKED_STATUS_CODES = frozenset({401, 403, 429})
CURL_TIMEOUT_EXIT_CODE = 28

# ─────────────────────────────────────────────────────────────
# Retention & staleness
# ─────────────────────────────────────────────────────────────
POST_RETENTION_DAYS = 30  # ingestion stops paging past this horizon
ANALYSIS_WINDOW_DAYS = 30  # full analyses cover this many days
WATCHER_STALE_HOURS = 6

# ─────────────────────────────────────────────────────────────
# Synthesis
# ─────────────────────────────────────────────────────────────
SHALLOW_ANALYSIS_THRESHOLD = 20  # below this, incremental chains are not trusted
MIN_POSTS_FOR_FULL_ANALYSIS = 5
MAX_POSTS_FOR_PROMPT = 150
RETRY_POST_LIMIT = 50
ANALYSIS_SPEND_REASON = "stocktwits_analysis_spend"
BATCH_SPEND_REASON = "social_analysis_spend"
PAYING_PLAN_TIER = "pro"

# ─────────────────────────────────────────────────────────────
# Event calendar
# ─────────────────────────────────────────────────────────────
EVENT_DATE_TOLERANCE_DAYS = 2
EVENT_KEYWORD_OVERLAP_RATIO = 0.6
EVENT_MIN_SHARED_KEYWORDS = 3
EVENT_MIN_KEYWORD_LENGTH = 3
EVENT_LOOKBACK_DAYS = 2  # existing events loaded for dedup start this far back
SOCIAL_EVENT_DEFAULT_CONFIDENCE = 0.6
UPCOMING_EVENTS_DEFAULT_DAYS = 90

# ─────────────────────────────────────────────────────────────
# Market
# ─────────────────────────────────────────────────────────────
MARKET_TIMEZONE = "America/New_York"
