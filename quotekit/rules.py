"""Ready-made validation rules: time gaps, price volatility, volume spikes, metadata."""

from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional, Sequence

from quotekit.errors import _format_duration
from quotekit.models import (
    HistoricalDataResponse,
    MetadataResponse,
    PriceData,
    RealTimeDataResponse,
)
from quotekit.validator import ValidationIssue, ValidationResult, ValidationSeverity

_ASSET_TYPE_ALIASES = {
    "stock": "stock",
    "stocks": "stock",
    "equity": "stock",
    "equities": "stock",
    "etf": "etf",
    "ETF": "etf",
    "exchange-traded fund": "etf",
    "exchange_traded_fund": "etf",
    "crypto": "crypto",
    "cryptocurrency": "crypto",
    "digital asset": "crypto",
    "digital_asset": "crypto",
    "digital currency": "crypto",
    "digital_currency": "crypto",
    "forex": "forex",
    "currency": "forex",
    "fx": "forex",
    "foreign exchange": "forex",
    "foreign_exchange": "forex",
}

_METADATA_ATTRIBUTES = {
    "Symbol": "symbol",
    "Name": "name",
    "Exchange": "exchange",
    "Currency": "currency",
    "Country": "country",
    "Sector": "sector",
    "Industry": "industry",
    "Description": "description",
    "Website": "website",
    "LogoURL": "logo_url",
}

_REQUIRED_FIELDS: Dict[str, Sequence[str]] = {
    "stock": ("Symbol", "Name", "Exchange", "Currency", "Country", "Sector", "Industry"),
    "etf": ("Symbol", "Name", "Exchange", "Currency", "Description"),
    "crypto": ("Symbol", "Name", "Exchange", "Currency"),
    "forex": ("Symbol", "Name", "Currency"),
}


def _passed() -> ValidationResult:
    return ValidationResult(is_valid=True, errors=[])


def _result(issues: list) -> ValidationResult:
    return ValidationResult(is_valid=not issues, errors=issues)


def normalize_asset_type(asset_type: str) -> str:
    """Map common spellings of an asset type to its canonical name."""
    return _ASSET_TYPE_ALIASES.get(asset_type, asset_type)


def price_range(data: Sequence[PriceData]) -> float:
    """Highest high minus lowest low; zero for no data."""
    if not data:
        return 0.0
    return max(bar.high for bar in data) - min(bar.low for bar in data)


def price_stddev(data: Sequence[PriceData]) -> float:
    """Sample standard deviation of close prices; zero for fewer than two bars."""
    if len(data) < 2:
        return 0.0
    return statistics.stdev(bar.close for bar in data)


@dataclass
class TimeIntervalRule:
    """Flags time reversals and gaps between consecutive bars larger than ``max_gap``."""

    max_gap: timedelta
    severity: ValidationSeverity = ValidationSeverity.ERROR
    name: str = field(default="TimeIntervalRule", init=False)
    description: str = field(
        default="Checks that the time between bars stays within a limit", init=False
    )

    def validate_historical_data(
        self, response: Optional[HistoricalDataResponse]
    ) -> ValidationResult:
        if response is None or len(response.data) < 2:
            return _passed()
        issues = []
        for i, (previous_bar, current_bar) in enumerate(
            zip(response.data, response.data[1:]), start=1
        ):
            previous, current = previous_bar.timestamp, current_bar.timestamp
            if previous is None or current is None:
                continue
            if previous > current:
                issues.append(
                    ValidationIssue(
                        f"Data[{i}].Timestamp",
                        "time_reversal",
                        f"Time reversal detected: {current} is before {previous}",
                        {"Current": current, "Previous": previous},
                    )
                )
                continue
            gap = current - previous
            if gap > self.max_gap:
                issues.append(
                    ValidationIssue(
                        f"Data[{i - 1}-{i}].Timestamp",
                        "time_gap",
                        f"Time gap too large: {_format_duration(gap)} "
                        f"(max allowed: {_format_duration(self.max_gap)})",
                        {
                            "Gap": _format_duration(gap),
                            "MaxAllowed": _format_duration(self.max_gap),
                        },
                    )
                )
        return _result(issues)

    def validate_realtime_data(self, response: Optional[RealTimeDataResponse]) -> ValidationResult:
        return _passed()

    def validate_metadata(self, response: Optional[MetadataResponse]) -> ValidationResult:
        return _passed()


@dataclass
class PriceVolatilityRule:
    """Flags windows whose price volatility relative to the last close exceeds a ratio.

    ``volatility_metric`` is ``"range"`` or ``"stddev"``; anything else means range.
    """

    max_volatility: float
    lookback_period: int
    volatility_metric: str = "range"
    severity: ValidationSeverity = ValidationSeverity.WARNING
    name: str = field(default="PriceVolatilityRule", init=False)
    description: str = field(
        default="Checks that price volatility stays within a limit", init=False
    )

    def _volatility(self, window: Sequence[PriceData]) -> float:
        if self.volatility_metric == "stddev":
            return price_stddev(window)
        return price_range(window)

    def _issue(self, field_name: str, ratio: float) -> ValidationIssue:
        return ValidationIssue(
            field_name,
            "high_volatility",
            f"{'High 24h' if field_name == 'High24h/Low24h' else 'High'} price volatility "
            f"detected: {ratio * 100:.2f}% (max allowed: {self.max_volatility * 100:.2f}%)",
            {"VolatilityRatio": ratio, "MaxAllowed": self.max_volatility},
        )

    def validate_historical_data(
        self, response: Optional[HistoricalDataResponse]
    ) -> ValidationResult:
        if response is None or len(response.data) < self.lookback_period:
            return _passed()
        issues = []
        for i in range(self.lookback_period, len(response.data)):
            window = response.data[i - self.lookback_period : i]
            if not window:
                continue
            base_price = window[-1].close
            if base_price == 0:
                continue
            ratio = self._volatility(window) / base_price
            if ratio > self.max_volatility:
                issues.append(self._issue(f"Data[{i - self.lookback_period}-{i - 1}]", ratio))
        return _result(issues)

    def validate_realtime_data(self, response: Optional[RealTimeDataResponse]) -> ValidationResult:
        if response is None:
            return _passed()
        issues = []
        if response.low_24h > 0 and response.high_24h > 0:
            ratio = (response.high_24h - response.low_24h) / response.low_24h
            if ratio > self.max_volatility:
                issues.append(self._issue("High24h/Low24h", ratio))
        return _result(issues)

    def validate_metadata(self, response: Optional[MetadataResponse]) -> ValidationResult:
        return _passed()


@dataclass
class VolumeAnomalyRule:
    """Flags bars whose volume exceeds the preceding average by more than a multiplier."""

    max_multiplier: float
    lookback_period: int
    severity: ValidationSeverity = ValidationSeverity.WARNING
    name: str = field(default="VolumeAnomalyRule", init=False)
    description: str = field(
        default="Checks that volume does not jump far above its recent average", init=False
    )

    def validate_historical_data(
        self, response: Optional[HistoricalDataResponse]
    ) -> ValidationResult:
        if response is None or len(response.data) < self.lookback_period + 1:
            return _passed()
        issues = []
        for i in range(self.lookback_period, len(response.data)):
            window = response.data[i - self.lookback_period : i]
            if not window:
                continue
            average = sum(bar.volume for bar in window) / self.lookback_period
            if average == 0:
                continue
            multiplier = response.data[i].volume / average
            if multiplier > self.max_multiplier:
                issues.append(
                    ValidationIssue(
                        f"Data[{i}].Volume",
                        "volume_anomaly",
                        f"Volume anomaly detected: {multiplier:.2f}x increase over average "
                        f"(max allowed: {self.max_multiplier:.2f}x)",
                        {"Multiplier": multiplier, "MaxAllowed": self.max_multiplier},
                    )
                )
        return _result(issues)

    def validate_realtime_data(self, response: Optional[RealTimeDataResponse]) -> ValidationResult:
        return _passed()

    def validate_metadata(self, response: Optional[MetadataResponse]) -> ValidationResult:
        return _passed()


@dataclass
class MetadataConsistencyRule:
    """Checks that metadata carries the fields its asset type requires."""

    severity: ValidationSeverity = ValidationSeverity.ERROR
    name: str = field(default="MetadataConsistencyRule", init=False)
    description: str = field(
        default="Checks metadata fields required by the asset type", init=False
    )

    def validate_historical_data(
        self, response: Optional[HistoricalDataResponse]
    ) -> ValidationResult:
        return _passed()

    def validate_realtime_data(self, response: Optional[RealTimeDataResponse]) -> ValidationResult:
        return _passed()

    def validate_metadata(self, response: Optional[MetadataResponse]) -> ValidationResult:
        if response is None:
            return _passed()
        asset_type = normalize_asset_type(str(response.asset_type))
        required = _REQUIRED_FIELDS.get(asset_type)
        if required is None:
            return _result(
                [
                    ValidationIssue(
                        "AssetType",
                        "unknown",
                        f"Unknown asset type: {asset_type}",
                        response.asset_type,
                    )
                ]
            )
        issues = []
        for field_name in required:
            value = getattr(response, _METADATA_ATTRIBUTES[field_name])
            if not value:
                issues.append(
                    ValidationIssue(
                        field_name,
                        "required_for_asset_type",
                        f"{field_name} is required for asset type: {asset_type}",
                        value,
                    )
                )
        return _result(issues)