"""Validation of market data responses, with pluggable rules."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, List, Optional, Protocol, runtime_checkable

from quotekit.errors import _format_duration
from quotekit.models import (
    HistoricalDataResponse,
    MetadataResponse,
    RealTimeDataResponse,
)

_DEFAULT_REQUIRED_METADATA = ("Symbol", "Name", "AssetType", "Exchange")

_METADATA_ATTRIBUTES = {
    "Symbol": "symbol",
    "Name": "name",
    "AssetType": "asset_type",
    "Exchange": "exchange",
    "Currency": "currency",
    "Country": "country",
    "Sector": "sector",
    "Industry": "industry",
}


class ValidationSeverity(str, enum.Enum):
    """How serious a rule violation is."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    def __str__(self) -> str:
        return self.value


@dataclass
class ValidationIssue:
    """One problem found during validation."""

    field: str
    code: str
    message: str
    value: Any = None


@dataclass
class ValidationResult:
    """Outcome of a validation: valid when no issues were found."""

    is_valid: bool = True
    errors: List[ValidationIssue] = field(default_factory=list)


@runtime_checkable
class ValidationRule(Protocol):
    """An additional check that a validator applies after its built-in ones."""

    @property
    def name(self) -> str:
        """Name of the rule."""
        ...

    @property
    def description(self) -> str:
        """What the rule checks."""
        ...

    @property
    def severity(self) -> ValidationSeverity:
        """Severity of a violation."""
        ...

    def validate_historical_data(self, response: HistoricalDataResponse) -> ValidationResult:
        """Check a price history."""
        ...

    def validate_realtime_data(self, response: RealTimeDataResponse) -> ValidationResult:
        """Check a real-time quote."""
        ...

    def validate_metadata(self, response: MetadataResponse) -> ValidationResult:
        """Check asset metadata."""
        ...


@dataclass
class ValidationConfig:
    """Settings for :class:`StandardValidator`; unset values get defaults."""

    max_price_threshold: float = 0.0
    min_price_threshold: float = 0.0
    max_volume_threshold: int = 0
    max_data_age: timedelta = field(default_factory=timedelta)
    required_metadata_fields: List[str] = field(default_factory=list)
    strict_validation: bool = False


class StandardValidator:
    """Validator applying built-in checks followed by any added rules."""

    def __init__(self, config: Optional[ValidationConfig] = None) -> None:
        cfg = config or ValidationConfig()
        self.config = ValidationConfig(
            max_price_threshold=cfg.max_price_threshold or 1_000_000.0,
            min_price_threshold=cfg.min_price_threshold or 0.000001,
            max_volume_threshold=cfg.max_volume_threshold or 1_000_000_000_000,
            max_data_age=cfg.max_data_age or timedelta(minutes=5),
            required_metadata_fields=list(
                cfg.required_metadata_fields or _DEFAULT_REQUIRED_METADATA
            ),
            strict_validation=cfg.strict_validation,
        )
        self.rules: List[ValidationRule] = []

    def add_rule(self, rule: ValidationRule) -> None:
        """Register a rule applied after the built-in checks."""
        self.rules.append(rule)

    def validate_historical_data(
        self, response: Optional[HistoricalDataResponse]
    ) -> ValidationResult:
        """Validate a price history."""
        if response is None:
            raise ValueError("input response is None")
        issues = list(self._historical_issues(response))
        return self._apply_rules(issues, "validate_historical_data", response)

    def validate_realtime_data(
        self, response: Optional[RealTimeDataResponse]
    ) -> ValidationResult:
        """Validate a real-time quote."""
        if response is None:
            raise ValueError("input response is None")
        issues = list(self._realtime_issues(response))
        return self._apply_rules(issues, "validate_realtime_data", response)

    def validate_metadata(self, response: Optional[MetadataResponse]) -> ValidationResult:
        """Validate asset metadata."""
        if response is None:
            raise ValueError("input response is None")
        issues = list(self._metadata_issues(response))
        return self._apply_rules(issues, "validate_metadata", response)

    def _apply_rules(
        self, issues: List[ValidationIssue], method: str, response: Any
    ) -> ValidationResult:
        for rule in self.rules:
            try:
                outcome = getattr(rule, method)(response)
            except Exception as exc:
                raise RuntimeError(f"rule '{rule.name}' validation error: {exc}") from exc
            if outcome is not None:
                issues.extend(outcome.errors)
        return ValidationResult(is_valid=not issues, errors=issues)

    def _price_out_of_range(self, price: float) -> bool:
        return not (self.config.min_price_threshold <= price <= self.config.max_price_threshold)

    def _price_range_text(self) -> str:
        return f"{self.config.min_price_threshold:f} and {self.config.max_price_threshold:f}"

    def _volume_out_of_range(self, volume: int) -> bool:
        return volume < 0 or volume > self.config.max_volume_threshold

    def _historical_issues(self, response: HistoricalDataResponse):
        if not response.symbol:
            yield ValidationIssue("Symbol", "required", "Symbol is required", response.symbol)
        if not response.asset_type:
            yield ValidationIssue(
                "AssetType", "required", "AssetType is required", response.asset_type
            )
        if not response.data:
            yield ValidationIssue("Data", "empty", "Historical data is empty", response.data)

        for i, bar in enumerate(response.data):
            if bar.timestamp is None:
                yield ValidationIssue(
                    f"Data[{i}].Timestamp", "invalid", "Timestamp is zero", bar.timestamp
                )
            for label, price in (
                ("Open", bar.open),
                ("High", bar.high),
                ("Low", bar.low),
                ("Close", bar.close),
            ):
                if self._price_out_of_range(price):
                    yield ValidationIssue(
                        f"Data[{i}].{label}",
                        "range",
                        f"{label} price must be between {self._price_range_text()}",
                        price,
                    )
            if self._volume_out_of_range(bar.volume):
                yield ValidationIssue(
                    f"Data[{i}].Volume",
                    "range",
                    f"Volume must be between 0 and {self.config.max_volume_threshold}",
                    bar.volume,
                )
            if bar.low > bar.high:
                yield ValidationIssue(
                    f"Data[{i}].Low/High",
                    "logic",
                    "Low price cannot be greater than High price",
                    {"Low": bar.low, "High": bar.high},
                )
            if bar.open < bar.low or bar.open > bar.high:
                yield ValidationIssue(
                    f"Data[{i}].Open",
                    "logic",
                    "Open price must be between Low and High prices",
                    {"Open": bar.open, "Low": bar.low, "High": bar.high},
                )
            if bar.close < bar.low or bar.close > bar.high:
                yield ValidationIssue(
                    f"Data[{i}].Close",
                    "logic",
                    "Close price must be between Low and High prices",
                    {"Close": bar.close, "Low": bar.low, "High": bar.high},
                )

    def _realtime_issues(self, response: RealTimeDataResponse):
        if not response.symbol:
            yield ValidationIssue("Symbol", "required", "Symbol is required", response.symbol)
        if not response.asset_type:
            yield ValidationIssue(
                "AssetType", "required", "AssetType is required", response.asset_type
            )

        stamp = response.timestamp
        if stamp is None:
            yield ValidationIssue("Timestamp", "invalid", "Timestamp is zero", stamp)
            stale, age_text = True, "unknown"
        else:
            age = datetime.now(stamp.tzinfo) - stamp
            stale, age_text = age > self.config.max_data_age, _format_duration(age)
        if stale:
            yield ValidationIssue(
                "Timestamp",
                "stale",
                f"Data is too old (age: {age_text}, "
                f"max allowed: {_format_duration(self.config.max_data_age)})",
                stamp,
            )

        if self._price_out_of_range(response.current_price):
            yield ValidationIssue(
                "CurrentPrice",
                "range",
                f"Current price must be between {self._price_range_text()}",
                response.current_price,
            )
        if self._volume_out_of_range(response.volume):
            yield ValidationIssue(
                "Volume",
                "range",
                f"Volume must be between 0 and {self.config.max_volume_threshold}",
                response.volume,
            )
        if response.low_24h > response.high_24h:
            yield ValidationIssue(
                "Low24h/High24h",
                "logic",
                "24h Low price cannot be greater than 24h High price",
                {"Low24h": response.low_24h, "High24h": response.high_24h},
            )
        if (
            response.current_price < response.low_24h
            or response.current_price > response.high_24h
        ):
            yield ValidationIssue(
                "CurrentPrice",
                "logic",
                "Current price should be between 24h Low and High prices",
                {
                    "CurrentPrice": response.current_price,
                    "Low24h": response.low_24h,
                    "High24h": response.high_24h,
                },
            )

    def _metadata_issues(self, response: MetadataResponse):
        for name in self.config.required_metadata_fields:
            attribute = _METADATA_ATTRIBUTES.get(name)
            if attribute is None:
                continue
            value = getattr(response, attribute)
            if not value:
                yield ValidationIssue(name, "required", f"{name} is required", value)
        if response.last_updated is None:
            yield ValidationIssue(
                "LastUpdated",
                "invalid",
                "LastUpdated timestamp is zero",
                response.last_updated,
            )