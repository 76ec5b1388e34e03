"""Application configuration."""

import os

# Feed endpoints
ESTIMATE_BASE_URL = os.getenv("ESTIMATE_BASE_URL", "https://fundgz.1234567.com.cn")
SEARCH_URL = os.getenv(
    "SEARCH_URL", "https://fundsuggest.eastmoney.com/FundSearch/api/FundSearchAPI.ashx"
)
QUOTE_BASE_URL = os.getenv("QUOTE_BASE_URL", "https://qt.gtimg.cn")
ARCHIVES_BASE_URL = os.getenv("ARCHIVES_BASE_URL", "https://fundf10.eastmoney.com")

USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
)

# Per-feed deadlines in seconds
ESTIMATE_TIMEOUT = float(os.getenv("ESTIMATE_TIMEOUT", "5"))
SEARCH_TIMEOUT = float(os.getenv("SEARCH_TIMEOUT", "3"))
QUOTE_TIMEOUT = float(os.getenv("QUOTE_TIMEOUT", "4"))
HOLDINGS_TIMEOUT = float(os.getenv("HOLDINGS_TIMEOUT", "5"))
NET_VALUE_TIMEOUT = float(os.getenv("NET_VALUE_TIMEOUT", "4"))

# Trading calendar
MARKET_TIMEZONE = os.getenv("MARKET_TIMEZONE", "Asia/Shanghai")
MARKET_INDEX_SYMBOL = "sh000001"

MAX_HOLDINGS = 10
BACKTRACK_MAX_DAYS = 30

# Watchlist refresher
WATCHLIST_CODES = [
    c.strip() for c in os.getenv("WATCHLIST_CODES", "").split(",") if c.strip()
]
REFRESH_INTERVAL = max(5, int(os.getenv("REFRESH_INTERVAL", "30")))  # seconds
SNAPSHOT_CACHE_TTL = int(os.getenv("SNAPSHOT_CACHE_TTL", "3600"))  # seconds
TRADING_START = "09:30"
LUNCH_BREAK_START = "11:30"
LUNCH_BREAK_END = "13:00"
TRADING_END = "15:00"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
