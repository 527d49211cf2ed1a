"""Domain model shared by data sources, normalizers and validators."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Protocol, Union, runtime_checkable


class AssetType(str, enum.Enum):
    """Kind of financial asset."""

    STOCK = "stock"
    BOND = "bond"
    ETF = "etf"
    CRYPTO = "crypto"
    COMMODITY = "commodity"
    FUTURE = "future"
    FOREX = "forex"
    INDEX = "index"
    MUTUAL_FUND = "mutual_fund"

    def __str__(self) -> str:
        return self.value


class Interval(str, enum.Enum):
    """Sampling interval of price data."""

    ONE_MINUTE = "1m"
    FIVE_MINUTES = "5m"
    FIFTEEN_MINUTES = "15m"
    THIRTY_MINUTES = "30m"
    ONE_HOUR = "1h"
    FOUR_HOURS = "4h"
    DAILY = "1d"
    WEEKLY = "1wk"
    MONTHLY = "1mo"
    QUARTERLY = "3mo"
    YEARLY = "1y"

    def __str__(self) -> str:
        return self.value


AssetTypeLike = Union[AssetType, str]
IntervalLike = Union[Interval, str]


@dataclass
class PriceData:
    """One OHLCV bar. A timestamp of None means it is unset."""

    timestamp: Optional[datetime] = None
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float = 0.0
    volume: int = 0
    adjusted_close: float = 0.0


@dataclass
class HistoricalDataRequest:
    """Request for price history of one asset over a time range."""

    symbol: str = ""
    asset_type: AssetTypeLike = ""
    interval: IntervalLike = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


@dataclass
class HistoricalDataResponse:
    """Price history of one asset."""

    symbol: str = ""
    asset_type: AssetTypeLike = ""
    interval: IntervalLike = ""
    data: List[PriceData] = field(default_factory=list)


@dataclass
class RealTimeDataRequest:
    """Request for the current quote of one asset."""

    symbol: str = ""
    asset_type: AssetTypeLike = ""


@dataclass
class RealTimeDataResponse:
    """Current quote of one asset."""

    symbol: str = ""
    asset_type: AssetTypeLike = ""
    current_price: float = 0.0
    timestamp: Optional[datetime] = None
    change: float = 0.0
    change_percent: float = 0.0
    volume: int = 0
    market_cap: float = 0.0
    high_24h: float = 0.0
    low_24h: float = 0.0


@dataclass
class MetadataRequest:
    """Request for descriptive data about one asset."""

    symbol: str = ""
    asset_type: AssetTypeLike = ""


@dataclass
class MetadataResponse:
    """Descriptive data about one asset."""

    symbol: str = ""
    asset_type: AssetTypeLike = ""
    name: str = ""
    exchange: str = ""
    currency: str = ""
    country: str = ""
    description: str = ""
    sector: str = ""
    industry: str = ""
    website: str = ""
    logo_url: str = ""
    last_updated: Optional[datetime] = None


@runtime_checkable
class DataSource(Protocol):
    """A provider of financial market data."""

    @property
    def source_name(self) -> str:
        """Name of the data source."""
        ...

    def fetch_historical_data(self, request: HistoricalDataRequest) -> HistoricalDataResponse:
        """Fetch price history for the requested asset and range."""
        ...

    def fetch_realtime_data(self, request: RealTimeDataRequest) -> RealTimeDataResponse:
        """Fetch the current quote for the requested asset."""
        ...

    def get_metadata(self, request: MetadataRequest) -> MetadataResponse:
        """Fetch descriptive data for the requested asset."""
        ...


@runtime_checkable
class SourceConfig(Protocol):
    """Settings common to every data source."""

    api_key: str
    base_url: str
    timeout: timedelta
    rate_limit_per_minute: int
    rate_limit_per_day: int
    retry_count: int
    retry_delay: timedelta