# quotekit

A library for collecting and checking financial market data. It needs
nothing beyond the Python standard library and supports Python 3.10 and later.

## What is in it

- `quotekit.models`: the `AssetType` and `Interval` enums, `PriceData` (one
  OHLCV bar), request and response dataclasses for price history
  (`HistoricalDataRequest`, `HistoricalDataResponse`), real-time quotes
  (`RealTimeDataRequest`, `RealTimeDataResponse`) and asset metadata
  (`MetadataRequest`, `MetadataResponse`), and the `DataSource` and
  `SourceConfig` protocols. An unset timestamp is `None`.
- `quotekit.errors`: `SourceError` (with `source`, `code` and `message`) and
  its subclasses `RateLimitError` (`retry_after`, a `timedelta`),
  `NetworkError` (`retryable`) and `ParseError` (`raw_data`).
- `quotekit.normalizer`: `StandardNormalizer` and `NormalizationConfig`.
- `quotekit.validator`: `StandardValidator`, `ValidationConfig`,
  `ValidationResult`, `ValidationIssue`, `ValidationSeverity` and the
  `ValidationRule` protocol.
- `quotekit.rules`: `TimeIntervalRule`, `PriceVolatilityRule`,
  `VolumeAnomalyRule`, `MetadataConsistencyRule` and the helpers
  `normalize_asset_type`, `price_range` and `price_stddev`.
- `quotekit.yahoo_client` and `quotekit.yahoo_config`: `YahooClient`,
  `YahooConfig` and `yahoo_interval`.

## Normalizing

```python
from datetime import datetime, timezone

from quotekit.models import AssetType, HistoricalDataResponse, Interval, PriceData
from quotekit.normalizer import NormalizationConfig, StandardNormalizer

history = HistoricalDataResponse(
    symbol="AAPL",
    asset_type=AssetType.STOCK,
    interval=Interval.DAILY,
    data=[
        PriceData(datetime(2024, 1, 2, tzinfo=timezone.utc), 100, 105, 98, 102, 1_000_000, 102),
        PriceData(datetime(2024, 1, 3, tzinfo=timezone.utc)),
    ],
)

normalizer = StandardNormalizer(NormalizationConfig(interpolation_method="previous",
                                                    max_gap_ratio=0.5))
normalized = normalizer.normalize_historical_data(history)
```

`StandardNormalizer` returns copies; it does not change its input. It
converts timestamps to `default_timezone` (UTC when unset), multiplies prices
by `price_scale_factor` and volumes by `volume_scale_factor` (both 1.0 when
unset), turns NaN and infinite results into zero, and fills an empty metadata
currency with `default_currency` (`"USD"` when unset). Real-time
`change_percent` is never scaled.

In a price history, a zero field of a bar takes the previous bar's non-zero
value when the change in close price relative to the previous close is at
most `max_gap_ratio` (0.1 when unset). A previous close of zero means no
filling. Setting `interpolation_method` to `"none"` turns filling off; every
other value, including the default `"linear"`, carries the previous value
forward.

## Validating

```python
from datetime import timedelta

from quotekit.rules import TimeIntervalRule, VolumeAnomalyRule
from quotekit.validator import StandardValidator, ValidationConfig

validator = StandardValidator(ValidationConfig(max_price_threshold=1000.0))
validator.add_rule(TimeIntervalRule(timedelta(hours=24)))
validator.add_rule(VolumeAnomalyRule(max_multiplier=3.0, lookback_period=3))

result = validator.validate_historical_data(normalized)
for issue in result.errors:
    print(issue.field, issue.code, issue.message)
```

The built-in checks cover a required symbol and asset type, non-empty data,
unset timestamps, prices between `min_price_threshold` and
`max_price_threshold` (defaults 0.000001 and 1,000,000), volumes between 0
and `max_volume_threshold` (default 10¹²), OHLC consistency, real-time data
older than `max_data_age` (default five minutes), and the metadata fields in
`required_metadata_fields` (default `Symbol`, `Name`, `AssetType`,
`Exchange`; `Currency`, `Country`, `Sector` and `Industry` are also
recognised, other names are ignored) plus a set `last_updated`.

Added rules run after the built-in checks and their issues are appended.
`result.is_valid` is false whenever any issue was found. Passing `None` as a
response raises `ValueError`; an exception from a rule is raised again as
`RuntimeError` naming the rule.

The rules:

- `TimeIntervalRule(max_gap, severity=ERROR)`: `time_reversal` and
  `time_gap` between consecutive bars.
- `PriceVolatilityRule(max_volatility, lookback_period, volatility_metric="range", severity=WARNING)`:
  `high_volatility` when the window's price range (or sample standard
  deviation of closes, with `"stddev"`) divided by its last close exceeds
  `max_volatility`; for a real-time quote, the 24h high/low spread over the
  24h low.
- `VolumeAnomalyRule(max_multiplier, lookback_period, severity=WARNING)`:
  `volume_anomaly` when a bar's volume exceeds the preceding window's average
  by more than `max_multiplier`.
- `MetadataConsistencyRule(severity=ERROR)`: `required_for_asset_type` for
  fields that stock, ETF, crypto and forex metadata must carry, and `unknown`
  for other asset types. Spellings such as `"equity"` or `"fx"` are mapped by
  `normalize_asset_type`.

## Fetching from Yahoo Finance

```python
from quotekit.models import MetadataRequest, RealTimeDataRequest
from quotekit.yahoo_client import YahooClient
from quotekit.yahoo_config import YahooConfig

client = YahooClient(YahooConfig(rate_limit_per_minute=50))
quote = client.fetch_realtime_data(RealTimeDataRequest("AAPL", "stock"))
info = client.get_metadata(MetadataRequest("AAPL", "stock"))
```

`fetch_historical_data` results are cached for `cache_duration` (30 minutes
by default), real-time quotes for one minute and metadata for 24 hours.
Requests beyond `rate_limit_per_minute` or `rate_limit_per_day` raise
`RateLimitError` before anything is sent. HTTP failures are raised as
`SourceError` subclasses: status 429 as `RateLimitError` (honouring a
`Retry-After` header), 500/502/503 and connection failures as retryable
`NetworkError`, and undecodable bodies as `ParseError`. `api_key`, when set,
is sent in an `X-API-KEY` header, and `proxy_url` routes requests through a
proxy. Returned timestamps are in UTC. `yahoo_interval` maps an `Interval`
to the name Yahoo Finance expects, falling back to `"1d"`.

## What it does not do

There is no command-line tool, server or storage; results live only in the
client's in-memory cache. `YahooClient` does not retry failed requests, so
`retry_count` and `retry_delay` in `YahooConfig` are only carried as
settings, as is `max_history_days`.