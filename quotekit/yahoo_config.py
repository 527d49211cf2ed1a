"""Settings for the Yahoo Finance data source."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta


@dataclass
class YahooConfig:
    """Connection, rate-limit and cache settings; the defaults are conservative."""

    api_key: str = ""
    base_url: str = "https://query1.finance.yahoo.com/v8/finance"
    timeout: timedelta = field(default_factory=lambda: timedelta(seconds=10))
    rate_limit_per_minute: int = 100
    rate_limit_per_day: int = 2000
    retry_count: int = 3
    retry_delay: timedelta = field(default_factory=lambda: timedelta(seconds=2))
    max_history_days: int = 7300
    user_agent: str = "GoFiChart/1.0"
    cache_duration: timedelta = field(default_factory=lambda: timedelta(minutes=30))
    proxy_url: str = ""