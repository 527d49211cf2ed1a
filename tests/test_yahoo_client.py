import json
import socket
import threading
from datetime import datetime, timedelta, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlsplit

import pytest

from quotekit.errors import NetworkError, ParseError, RateLimitError, SourceError
from quotekit.models import (
    AssetType,
    HistoricalDataRequest,
    Interval,
    MetadataRequest,
    RealTimeDataRequest,
)
from quotekit.yahoo_client import YahooClient, yahoo_interval
from quotekit.yahoo_config import YahooConfig


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        parsed = urlsplit(self.path)
        self.server.requests.append((parsed.path, parse_qs(parsed.query), self.headers))
        status, headers, body = self.server.routes.get(parsed.path, (404, {}, b"{}"))
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode()
        self.send_response(status)
        for name, value in headers.items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, *args):
        pass


@pytest.fixture
def server():
    srv = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    srv.routes = {}
    srv.requests = []
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield srv
    srv.shutdown()
    srv.server_close()


def _base(srv):
    return f"http://127.0.0.1:{srv.server_port}"


def _client(srv, **overrides):
    config = YahooConfig(base_url=_base(srv) + "/v8/finance", **overrides)
    return YahooClient(config, search_url=_base(srv) + "/v1/finance/search")


CHART = {
    "chart": {
        "result": [
            {
                "meta": {"currency": "USD", "symbol": "AAPL", "exchangeName": "NASDAQ"},
                "timestamp": [1609459200, 1609545600, 1609632000],
                "indicators": {
                    "quote": [
                        {
                            "open": [133.52, 134.08, 135.83],
                            "high": [134.74, 135.99, 136.69],
                            "low": [131.72, 132.43, 133.51],
                            "close": [132.69, 135.55, 136.01],
                            "volume": [100000000, 98000000, 95000000],
                        }
                    ],
                    "adjclose": [{"adjclose": [132.69, 135.55, 136.01]}],
                },
            }
        ],
        "error": None,
    }
}

QUOTE = {
    "quoteResponse": {
        "result": [
            {
                "symbol": "AAPL",
                "language": "en-US",
                "region": "US",
                "quoteType": "EQUITY",
                "currency": "USD",
                "marketState": "REGULAR",
                "regularMarketPrice": 150.10,
                "regularMarketChange": 2.5,
                "regularMarketChangePercent": 1.69,
                "regularMarketVolume": 87654321,
                "regularMarketDayHigh": 151.20,
                "regularMarketDayLow": 148.50,
                "regularMarketTime": 1700000000,
                "marketCap": 2500000000000,
            }
        ],
        "error": None,
    }
}


def _history_request(symbol="AAPL"):
    now = datetime.now(timezone.utc)
    return HistoricalDataRequest(
        symbol=symbol,
        asset_type=AssetType.STOCK,
        interval=Interval.DAILY,
        start_time=now - timedelta(days=7),
        end_time=now,
    )


def test_new_client_keeps_config():
    config = YahooConfig()
    client = YahooClient(config)
    assert client.config is config
    assert client.source_name == "yahoo_finance"


def test_default_client_uses_default_config():
    client = YahooClient()
    assert client.config == YahooConfig()


@pytest.mark.parametrize(
    "interval, expected",
    [
        (Interval.ONE_MINUTE, "1m"),
        (Interval.FIVE_MINUTES, "5m"),
        (Interval.FIFTEEN_MINUTES, "15m"),
        (Interval.THIRTY_MINUTES, "30m"),
        (Interval.ONE_HOUR, "1h"),
        (Interval.FOUR_HOURS, "4h"),
        (Interval.DAILY, "1d"),
        (Interval.WEEKLY, "1wk"),
        (Interval.MONTHLY, "1mo"),
        (Interval.QUARTERLY, "3mo"),
        (Interval.YEARLY, "1y"),
        ("unknown", "1d"),
    ],
)
def test_yahoo_interval(interval, expected):
    assert yahoo_interval(interval) == expected


def test_fetch_historical_data(server):
    server.routes["/v8/finance/chart/AAPL"] = (200, {"Content-Type": "application/json"}, CHART)
    client = _client(server)
    request = _history_request()

    response = client.fetch_historical_data(request)

    path, query, _ = server.requests[0]
    assert path == "/v8/finance/chart/AAPL"
    assert query["symbol"] == ["AAPL"]
    assert query["period1"][0]
    assert query["period2"][0]
    assert query["interval"] == ["1d"]

    assert response.symbol == "AAPL"
    assert response.asset_type == AssetType.STOCK
    assert response.interval == Interval.DAILY
    assert len(response.data) == 3
    first = response.data[0]
    assert first.open == 133.52
    assert first.high == 134.74
    assert first.low == 131.72
    assert first.close == 132.69
    assert first.volume == 100000000
    assert first.adjusted_close == 132.69
    assert first.timestamp == datetime(2021, 1, 1, tzinfo=timezone.utc)

    cached = client.fetch_historical_data(request)
    assert cached is response
    assert len(server.requests) == 1


def test_historical_without_adjclose_uses_close(server):
    chart = json.loads(json.dumps(CHART))
    del chart["chart"]["result"][0]["indicators"]["adjclose"]
    chart["chart"]["result"][0]["indicators"]["quote"][0]["open"][1] = None
    server.routes["/v8/finance/chart/AAPL"] = (200, {}, chart)

    response = _client(server).fetch_historical_data(_history_request())

    assert [bar.adjusted_close for bar in response.data] == [132.69, 135.55, 136.01]
    assert response.data[1].open == 0.0


def test_historical_no_result(server):
    server.routes["/v8/finance/chart/AAPL"] = (200, {}, {"chart": {"result": []}})
    with pytest.raises(SourceError) as info:
        _client(server).fetch_historical_data(_history_request())
    assert info.value.code == "NO_DATA"


def test_historical_length_mismatch(server):
    chart = json.loads(json.dumps(CHART))
    chart["chart"]["result"][0]["indicators"]["quote"][0]["close"] = [1.0]
    server.routes["/v8/finance/chart/AAPL"] = (200, {}, chart)
    with pytest.raises(SourceError) as info:
        _client(server).fetch_historical_data(_history_request())
    assert info.value.code == "DATA_MISMATCH"


def test_fetch_realtime_data(server):
    server.routes["/v8/finance/quote"] = (200, {"Content-Type": "application/json"}, QUOTE)
    client = _client(server)
    request = RealTimeDataRequest(symbol="AAPL", asset_type=AssetType.STOCK)

    response = client.fetch_realtime_data(request)

    path, query, _ = server.requests[0]
    assert path == "/v8/finance/quote"
    assert query["symbols"] == ["AAPL"]
    assert response.symbol == "AAPL"
    assert response.asset_type == AssetType.STOCK
    assert response.current_price == 150.10
    assert response.change == 2.5
    assert response.change_percent == 1.69
    assert response.volume == 87654321
    assert response.high_24h == 151.20
    assert response.low_24h == 148.50
    assert response.market_cap == 2500000000000.0
    assert response.timestamp == datetime.fromtimestamp(1700000000, timezone.utc)

    assert client.fetch_realtime_data(request) is response
    assert len(server.requests) == 1


def test_realtime_no_result(server):
    server.routes["/v8/finance/quote"] = (200, {}, {"quoteResponse": {"result": []}})
    with pytest.raises(SourceError) as info:
        _client(server).fetch_realtime_data(RealTimeDataRequest(symbol="ZZZ"))
    assert info.value.code == "NO_DATA"
    assert "ZZZ" in str(info.value)


def test_get_metadata_with_search(server):
    server.routes["/v8/finance/quote"] = (200, {}, QUOTE)
    server.routes["/v1/finance/search"] = (
        200,
        {},
        {
            "ResultSet": {
                "Query": "AAPL",
                "Result": [
                    {"symbol": "AAPL.X", "name": "Other"},
                    {
                        "symbol": "AAPL",
                        "name": "Apple Inc.",
                        "exchDisp": "NASDAQ",
                        "sectorDisp": "Technology",
                        "industryDisp": "Consumer Electronics",
                    },
                ],
            }
        },
    )

    response = _client(server).get_metadata(
        MetadataRequest(symbol="AAPL", asset_type=AssetType.STOCK)
    )

    assert response.name == "Apple Inc."
    assert response.exchange == "NASDAQ"
    assert response.sector == "Technology"
    assert response.industry == "Consumer Electronics"
    assert response.currency == "USD"
    assert response.country == "US"
    assert response.last_updated is not None and response.last_updated.tzinfo is not None
    _, search_query, _ = server.requests[1]
    assert search_query == {"query": ["AAPL"], "region": ["US"], "lang": ["en-US"]}


def test_get_metadata_survives_failed_search(server):
    server.routes["/v8/finance/quote"] = (200, {}, QUOTE)
    server.routes["/v1/finance/search"] = (500, {}, b"{}")

    response = _client(server).get_metadata(MetadataRequest(symbol="AAPL"))

    assert response.name == "AAPL"
    assert response.exchange == "US"
    assert response.sector == ""


def test_too_many_requests_uses_retry_after(server):
    server.routes["/v8/finance/quote"] = (429, {"Retry-After": "7"}, b"{}")
    with pytest.raises(RateLimitError) as info:
        _client(server).fetch_realtime_data(RealTimeDataRequest(symbol="AAPL"))
    assert info.value.retry_after == timedelta(seconds=7)


@pytest.mark.parametrize(
    "status, code",
    [(401, "AUTHORIZATION_ERROR"), (403, "AUTHORIZATION_ERROR"), (404, "NOT_FOUND"), (418, "HTTP_ERROR")],
)
def test_status_errors(server, status, code):
    server.routes["/v8/finance/quote"] = (status, {}, b"{}")
    with pytest.raises(SourceError) as info:
        _client(server).fetch_realtime_data(RealTimeDataRequest(symbol="AAPL"))
    assert info.value.code == code
    assert str(status) in info.value.message


def test_server_error_is_retryable_network_error(server):
    server.routes["/v8/finance/quote"] = (503, {}, b"{}")
    with pytest.raises(NetworkError) as info:
        _client(server).fetch_realtime_data(RealTimeDataRequest(symbol="AAPL"))
    assert info.value.retryable is True
    assert info.value.code == "NETWORK_ERROR"


def test_invalid_json_raises_parse_error(server):
    server.routes["/v8/finance/quote"] = (200, {}, b"{invalid:json}")
    with pytest.raises(ParseError) as info:
        _client(server).fetch_realtime_data(RealTimeDataRequest(symbol="AAPL"))
    assert info.value.raw_data == "{invalid:json}"
    assert info.value.code == "PARSE_ERROR"


def test_connection_failure_raises_network_error():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    client = YahooClient(YahooConfig(base_url=f"http://127.0.0.1:{port}/v8/finance"))
    with pytest.raises(NetworkError) as info:
        client.fetch_realtime_data(RealTimeDataRequest(symbol="AAPL"))
    assert info.value.retryable is True
    assert "Request failed for" in info.value.message


def test_headers_are_sent(server):
    server.routes["/v8/finance/quote"] = (200, {}, QUOTE)
    _client(server, api_key="placeholder").fetch_realtime_data(RealTimeDataRequest(symbol="AAPL"))
    _, _, headers = server.requests[0]
    assert headers.get("User-Agent") == "GoFiChart/1.0"
    assert headers.get("X-API-KEY") == "placeholder"


def test_rate_limit_per_minute(server):
    server.routes["/v8/finance/quote"] = (200, {}, QUOTE)
    client = _client(server, rate_limit_per_minute=2)

    client.fetch_realtime_data(RealTimeDataRequest(symbol="A"))
    client.fetch_realtime_data(RealTimeDataRequest(symbol="B"))
    with pytest.raises(RateLimitError) as info:
        client.fetch_realtime_data(RealTimeDataRequest(symbol="C"))

    assert info.value.source == "yahoo_finance"
    assert info.value.code == "RATE_LIMIT_EXCEEDED"
    assert info.value.retry_after > timedelta(0)
    assert len(server.requests) == 2


def test_rate_limit_per_day(server):
    server.routes["/v8/finance/quote"] = (200, {}, QUOTE)
    client = _client(server, rate_limit_per_day=1)

    client.fetch_realtime_data(RealTimeDataRequest(symbol="A"))
    with pytest.raises(RateLimitError) as info:
        client.fetch_realtime_data(RealTimeDataRequest(symbol="B"))

    assert timedelta(0) < info.value.retry_after <= timedelta(days=1)


def test_expired_cache_is_refetched(server):
    server.routes["/v8/finance/chart/AAPL"] = (200, {}, CHART)
    client = _client(server, cache_duration=timedelta(minutes=-1))
    request = _history_request()

    first = client.fetch_historical_data(request)
    second = client.fetch_historical_data(request)

    assert first is not second
    assert first == second
    assert len(server.requests) == 2