"""Normalization of market data: time zone, scaling, currency and gap filling."""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import List, Optional

from quotekit.models import (
    HistoricalDataResponse,
    MetadataResponse,
    PriceData,
    RealTimeDataResponse,
)

_FILLED_FIELDS = ("open", "high", "low", "close", "adjusted_close", "volume")


@dataclass
class NormalizationConfig:
    """Settings for :class:`StandardNormalizer`.

    Unset (``None``, empty or zero) values are replaced by defaults when the
    normalizer is created. ``interpolation_method`` is one of ``"linear"``,
    ``"previous"``, ``"zero"`` or ``"none"``; gaps whose close-price ratio
    exceeds ``max_gap_ratio`` are left as they are.
    """

    default_timezone: Optional[tzinfo] = None
    default_currency: str = ""
    interpolation_method: str = ""
    price_scale_factor: float = 0.0
    volume_scale_factor: float = 0.0
    max_gap_ratio: float = 0.0


@dataclass
class StandardNormalizer:
    """Default normalizer for historical, real-time and metadata responses."""

    config: NormalizationConfig = field(default_factory=NormalizationConfig)

    def __post_init__(self) -> None:
        cfg = self.config
        self.config = NormalizationConfig(
            default_timezone=cfg.default_timezone or timezone.utc,
            default_currency=cfg.default_currency or "USD",
            interpolation_method=cfg.interpolation_method or "linear",
            price_scale_factor=cfg.price_scale_factor or 1.0,
            volume_scale_factor=cfg.volume_scale_factor or 1.0,
            max_gap_ratio=cfg.max_gap_ratio or 0.1,
        )

    def normalize_historical_data(
        self, response: Optional[HistoricalDataResponse]
    ) -> HistoricalDataResponse:
        """Return a normalized copy of a price history."""
        if response is None:
            raise ValueError("input response is None")

        data = [
            PriceData(
                timestamp=self._to_zone(bar.timestamp),
                open=self._price(bar.open),
                high=self._price(bar.high),
                low=self._price(bar.low),
                close=self._price(bar.close),
                adjusted_close=self._price(bar.adjusted_close),
                volume=self._volume(bar.volume),
            )
            for bar in response.data
        ]
        self._fill_missing(data)
        return HistoricalDataResponse(
            symbol=response.symbol,
            asset_type=response.asset_type,
            interval=response.interval,
            data=data,
        )

    def normalize_realtime_data(
        self, response: Optional[RealTimeDataResponse]
    ) -> RealTimeDataResponse:
        """Return a normalized copy of a real-time quote; percentages are kept as is."""
        if response is None:
            raise ValueError("input response is None")

        return RealTimeDataResponse(
            symbol=response.symbol,
            asset_type=response.asset_type,
            current_price=self._price(response.current_price),
            timestamp=self._to_zone(response.timestamp),
            change=self._price(response.change),
            change_percent=response.change_percent,
            volume=self._volume(response.volume),
            market_cap=self._price(response.market_cap),
            high_24h=self._price(response.high_24h),
            low_24h=self._price(response.low_24h),
        )

    def normalize_metadata(self, response: Optional[MetadataResponse]) -> MetadataResponse:
        """Return a normalized copy of asset metadata."""
        if response is None:
            raise ValueError("input response is None")

        return MetadataResponse(
            symbol=response.symbol,
            asset_type=response.asset_type,
            name=response.name,
            exchange=response.exchange,
            currency=response.currency or self.config.default_currency,
            country=response.country,
            description=response.description,
            sector=response.sector,
            industry=response.industry,
            website=response.website,
            logo_url=response.logo_url,
            last_updated=self._to_zone(response.last_updated),
        )

    def _to_zone(self, moment: Optional[datetime]) -> Optional[datetime]:
        if moment is None:
            return None
        return moment.astimezone(self.config.default_timezone)

    def _price(self, price: float) -> float:
        if price == 0:
            return 0.0
        scaled = price * self.config.price_scale_factor
        if math.isnan(scaled) or math.isinf(scaled):
            return 0.0
        return scaled

    def _volume(self, volume: int) -> int:
        if volume == 0:
            return 0
        scaled = float(volume) * self.config.volume_scale_factor
        if math.isnan(scaled) or math.isinf(scaled):
            return 0
        return int(scaled)

    def _fill_missing(self, data: List[PriceData]) -> None:
        """Carry previous non-zero values into zero fields where the gap is small."""
        if self.config.interpolation_method == "none" or len(data) < 2:
            return
        for previous, current in zip(data, data[1:]):
            if _gap_ratio(current, previous) > self.config.max_gap_ratio:
                continue
            for name in _FILLED_FIELDS:
                earlier = getattr(previous, name)
                if getattr(current, name) == 0 and earlier != 0:
                    setattr(current, name, earlier)


def _gap_ratio(current: PriceData, previous: PriceData) -> float:
    if previous.close == 0:
        return sys.float_info.max
    return abs(current.close - previous.close) / previous.close