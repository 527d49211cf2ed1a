"""Yahoo Finance data source with response caching and client-side rate limiting."""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from http.client import HTTPException
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import ProxyHandler, Request, build_opener

from quotekit.errors import NetworkError, ParseError, RateLimitError, SourceError
from quotekit.models import (
    HistoricalDataRequest,
    HistoricalDataResponse,
    Interval,
    IntervalLike,
    MetadataRequest,
    MetadataResponse,
    PriceData,
    RealTimeDataRequest,
    RealTimeDataResponse,
)
from quotekit.yahoo_config import YahooConfig

SEARCH_URL = "https://query1.finance.yahoo.com/v1/finance/search"

_REALTIME_FIELDS = (
    "regularMarketPrice,regularMarketChange,regularMarketChangePercent,"
    "regularMarketVolume,regularMarketDayHigh,regularMarketDayLow,"
    "regularMarketTime,marketCap"
)

_INTERVALS = {
    Interval.ONE_MINUTE: "1m",
    Interval.FIVE_MINUTES: "5m",
    Interval.FIFTEEN_MINUTES: "15m",
    Interval.THIRTY_MINUTES: "30m",
    Interval.ONE_HOUR: "1h",
    Interval.FOUR_HOURS: "4h",
    Interval.DAILY: "1d",
    Interval.WEEKLY: "1wk",
    Interval.MONTHLY: "1mo",
    Interval.QUARTERLY: "3mo",
    Interval.YEARLY: "1y",
}

T = TypeVar("T")


def yahoo_interval(interval: IntervalLike) -> str:
    """Translate a domain interval to the Yahoo Finance one; unknown values mean daily."""
    return _INTERVALS.get(interval, "1d")


# --- decoding of JSON payloads -------------------------------------------------


def _obj(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"expected an object, got {type(value).__name__}")
    return value


def _list(value: Any) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"expected an array, got {type(value).__name__}")
    return value


def _str(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return value


def _float(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {type(value).__name__}")
    return float(value)


def _int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {type(value).__name__}")
    return int(value)


def _floats(values: Any) -> List[float]:
    return [_float(v) for v in _list(values)]


def _ints(values: Any) -> List[int]:
    return [_int(v) for v in _list(values)]


@dataclass
class _ChartQuote:
    open: List[float]
    high: List[float]
    low: List[float]
    close: List[float]
    volume: List[int]


@dataclass
class _ChartResult:
    timestamps: List[int]
    quotes: List[_ChartQuote]
    adj_close: List[List[float]]


@dataclass
class _Quote:
    symbol: str = ""
    region: str = ""
    currency: str = ""
    price: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    volume: int = 0
    day_high: float = 0.0
    day_low: float = 0.0
    market_time: int = 0
    market_cap: float = 0.0


@dataclass
class _SearchHit:
    symbol: str = ""
    name: str = ""
    exchange: str = ""
    sector: str = ""
    industry: str = ""


def _decode_chart(payload: Dict[str, Any]) -> List[_ChartResult]:
    results = []
    for item in _list(_obj(payload.get("chart")).get("result")):
        item = _obj(item)
        indicators = _obj(item.get("indicators"))
        quotes = [
            _ChartQuote(
                open=_floats(q.get("open")),
                high=_floats(q.get("high")),
                low=_floats(q.get("low")),
                close=_floats(q.get("close")),
                volume=_ints(q.get("volume")),
            )
            for q in map(_obj, _list(indicators.get("quote")))
        ]
        adj_close = [
            _floats(_obj(entry).get("adjclose")) for entry in _list(indicators.get("adjclose"))
        ]
        results.append(_ChartResult(_ints(item.get("timestamp")), quotes, adj_close))
    return results


def _decode_quotes(payload: Dict[str, Any]) -> List[_Quote]:
    return [
        _Quote(
            symbol=_str(q.get("symbol")),
            region=_str(q.get("region")),
            currency=_str(q.get("currency")),
            price=_float(q.get("regularMarketPrice")),
            change=_float(q.get("regularMarketChange")),
            change_percent=_float(q.get("regularMarketChangePercent")),
            volume=_int(q.get("regularMarketVolume")),
            day_high=_float(q.get("regularMarketDayHigh")),
            day_low=_float(q.get("regularMarketDayLow")),
            market_time=_int(q.get("regularMarketTime")),
            market_cap=_float(q.get("marketCap")),
        )
        for q in map(_obj, _list(_obj(payload.get("quoteResponse")).get("result")))
    ]


def _decode_search(payload: Dict[str, Any]) -> List[_SearchHit]:
    return [
        _SearchHit(
            symbol=_str(hit.get("symbol")),
            name=_str(hit.get("name")),
            exchange=_str(hit.get("exchDisp")),
            sector=_str(hit.get("sectorDisp")),
            industry=_str(hit.get("industryDisp")),
        )
        for hit in map(_obj, _list(_obj(payload.get("ResultSet")).get("Result")))
    ]


def _unix(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, timezone.utc)


def _epoch(moment: Optional[datetime]) -> int:
    return 0 if moment is None else int(moment.timestamp())


# --- client ----------------------------------------------------------------------


@dataclass
class _CacheEntry:
    data: Any
    expires_at: float


@dataclass
class _RequestCounter:
    minute: int = 0
    day: int = 0
    reset: datetime = field(default_factory=lambda: datetime.now() + timedelta(minutes=1))


class YahooClient:
    """Data source backed by the Yahoo Finance HTTP API."""

    def __init__(self, config: Optional[YahooConfig] = None, search_url: str = SEARCH_URL) -> None:
        self.config = config if config is not None else YahooConfig()
        self.search_url = search_url
        if self.config.proxy_url:
            proxy = self.config.proxy_url
            self._opener = build_opener(ProxyHandler({"http": proxy, "https": proxy}))
        else:
            self._opener = build_opener()
        self._cache: Dict[str, _CacheEntry] = {}
        self._cache_lock = threading.Lock()
        self._counter = _RequestCounter()
        self._rate_lock = threading.Lock()

    @property
    def source_name(self) -> str:
        return "yahoo_finance"

    def fetch_historical_data(self, request: HistoricalDataRequest) -> HistoricalDataResponse:
        """Fetch price history for the requested symbol, interval and range."""
        start, end = _epoch(request.start_time), _epoch(request.end_time)
        key = (
            f"hist:{request.symbol}:{request.asset_type}:{request.interval}:{start}:{end}"
        )
        cached = self._cached(key)
        if cached is not None:
            return cached

        params = {
            "symbol": request.symbol,
            "period1": str(start),
            "period2": str(end),
            "interval": yahoo_interval(request.interval),
            "includePrePost": "false",
            "events": "div,split",
        }
        endpoint = f"{self.config.base_url}/chart/{request.symbol}?{self._encode(params)}"
        results = self._request(endpoint, _decode_chart)
        response = self._convert_historical(results, request)
        self._store(key, response, self.config.cache_duration)
        return response

    def fetch_realtime_data(self, request: RealTimeDataRequest) -> RealTimeDataResponse:
        """Fetch the current quote; results are cached for one minute."""
        key = f"realtime:{request.symbol}:{request.asset_type}"
        cached = self._cached(key)
        if cached is not None:
            return cached

        params = {"symbols": request.symbol, "fields": _REALTIME_FIELDS}
        endpoint = f"{self.config.base_url}/quote?{self._encode(params)}"
        quotes = self._request(endpoint, _decode_quotes)
        if not quotes:
            raise SourceError(
                self.source_name, "NO_DATA", f"No data found for symbol: {request.symbol}"
            )
        quote = quotes[0]
        response = RealTimeDataResponse(
            symbol=request.symbol,
            asset_type=request.asset_type,
            current_price=quote.price,
            timestamp=_unix(quote.market_time),
            change=quote.change,
            change_percent=quote.change_percent,
            volume=quote.volume,
            market_cap=quote.market_cap,
            high_24h=quote.day_high,
            low_24h=quote.day_low,
        )
        self._store(key, response, timedelta(minutes=1))
        return response

    def get_metadata(self, request: MetadataRequest) -> MetadataResponse:
        """Fetch descriptive data from the quote and search APIs; cached for a day."""
        key = f"meta:{request.symbol}:{request.asset_type}"
        cached = self._cached(key)
        if cached is not None:
            return cached

        endpoint = f"{self.config.base_url}/quote?{self._encode({'symbols': request.symbol})}"
        quotes = self._request(endpoint, _decode_quotes)
        if not quotes:
            raise SourceError(
                self.source_name, "NO_DATA", f"No data found for symbol: {request.symbol}"
            )
        quote = quotes[0]

        search_params = {"query": request.symbol, "region": "US", "lang": "en-US"}
        search_endpoint = f"{self.search_url}?{self._encode(search_params)}"
        try:
            hits = self._request(search_endpoint, _decode_search)
        except SourceError:
            hits = []
        match = next((hit for hit in hits if hit.symbol == request.symbol), _SearchHit())

        response = MetadataResponse(
            symbol=request.symbol,
            asset_type=request.asset_type,
            name=match.name or request.symbol,
            exchange=match.exchange or quote.region,
            currency=quote.currency,
            country=quote.region,
            sector=match.sector,
            industry=match.industry,
            website="",
            last_updated=datetime.now(timezone.utc),
        )
        self._store(key, response, timedelta(hours=24))
        return response

    # --- HTTP ------------------------------------------------------------------

    @staticmethod
    def _encode(params: Dict[str, str]) -> str:
        return urlencode(sorted(params.items()))

    def _request(self, endpoint: str, decode: Callable[[Dict[str, Any]], T]) -> T:
        self._check_rate_limit()
        headers = {"User-Agent": self.config.user_agent}
        if self.config.api_key:
            headers["X-API-KEY"] = self.config.api_key
        try:
            req = Request(endpoint, headers=headers, method="GET")
        except ValueError as exc:
            raise SourceError(
                self.source_name, "REQUEST_ERROR", f"Error creating request: {exc}"
            ) from exc

        try:
            try:
                response = self._opener.open(req, timeout=self.config.timeout.total_seconds())
            finally:
                self._record_request()
        except HTTPError as exc:
            with exc:
                raise self._status_error(exc.code, exc.reason, exc.headers) from exc
        except (URLError, OSError, HTTPException) as exc:
            raise NetworkError(
                self.source_name, f"Request failed for {endpoint}: {exc}", True
            ) from exc

        with response:
            if response.status != 200:
                raise self._status_error(response.status, response.reason, response.headers)
            try:
                body = response.read()
            except (OSError, HTTPException) as exc:
                raise SourceError(
                    self.source_name, "RESPONSE_ERROR", f"Error reading response: {exc}"
                ) from exc

        raw = body.decode("utf-8", errors="replace")
        try:
            return decode(_obj(json.loads(body)))
        except (ValueError, TypeError, AttributeError) as exc:
            raise ParseError(self.source_name, f"Error parsing JSON: {exc}", raw) from exc

    def _status_error(self, code: int, reason: str, headers: Any) -> SourceError:
        status = f"{code} {reason}"
        if code == 429:
            retry_after = timedelta(seconds=60)
            header = headers.get("Retry-After") if headers is not None else None
            if header:
                try:
                    retry_after = timedelta(seconds=int(header))
                except ValueError:
                    pass
            return RateLimitError(self.source_name, retry_after)
        if code in (401, 403):
            return SourceError(
                self.source_name, "AUTHORIZATION_ERROR", f"Authorization failed: {code} {status}"
            )
        if code == 404:
            return SourceError(self.source_name, "NOT_FOUND", f"Resource not found: {status}")
        if code in (500, 502, 503):
            return NetworkError(self.source_name, f"Server error: {code} {status}", True)
        return SourceError(self.source_name, "HTTP_ERROR", f"HTTP error: {code} {status}")

    def _convert_historical(
        self, results: List[_ChartResult], request: HistoricalDataRequest
    ) -> HistoricalDataResponse:
        if not results:
            raise SourceError(
                self.source_name,
                "NO_DATA",
                f"No historical data found for symbol: {request.symbol}",
            )
        result = results[0]
        mismatch = SourceError(
            self.source_name, "DATA_MISMATCH", "Data length mismatch in historical data"
        )
        if not result.quotes:
            raise mismatch
        quote = result.quotes[0]
        size = len(result.timestamps)
        columns: Tuple[List[Any], ...] = (
            quote.open,
            quote.high,
            quote.low,
            quote.close,
            quote.volume,
        )
        if size == 0 or any(len(column) != size for column in columns):
            raise mismatch

        if result.adj_close and len(result.adj_close[0]) == size:
            adjusted = result.adj_close[0]
        else:
            adjusted = quote.close

        data = [
            PriceData(
                timestamp=_unix(stamp),
                open=o,
                high=h,
                low=lo,
                close=c,
                volume=v,
                adjusted_close=adj,
            )
            for stamp, o, h, lo, c, v, adj in zip(
                result.timestamps,
                quote.open,
                quote.high,
                quote.low,
                quote.close,
                quote.volume,
                adjusted,
            )
        ]
        return HistoricalDataResponse(
            symbol=request.symbol,
            asset_type=request.asset_type,
            interval=request.interval,
            data=data,
        )

    # --- cache -----------------------------------------------------------------

    def _store(self, key: str, data: Any, duration: timedelta) -> None:
        with self._cache_lock:
            self._cache[key] = _CacheEntry(data, time.monotonic() + duration.total_seconds())

    def _cached(self, key: str) -> Any:
        with self._cache_lock:
            entry = self._cache.get(key)
        if entry is None or time.monotonic() > entry.expires_at:
            return None
        return entry.data

    # --- rate limiting ---------------------------------------------------------

    def _check_rate_limit(self) -> None:
        with self._rate_lock:
            now = datetime.now()
            counter = self._counter
            if now > counter.reset:
                counter.minute = 0
                counter.reset = now + timedelta(minutes=1)
                if now.day != counter.reset.day:
                    counter.day = 0

            if counter.minute >= self.config.rate_limit_per_minute:
                raise RateLimitError(self.source_name, counter.reset - now)
            if counter.day >= self.config.rate_limit_per_day:
                midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
                raise RateLimitError(self.source_name, midnight + timedelta(days=1) - now)

    def _record_request(self) -> None:
        with self._rate_lock:
            self._counter.minute += 1
            self._counter.day += 1