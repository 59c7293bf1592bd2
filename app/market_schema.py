# market_schema.py
# FROZEN SCHEMA v1.0.0 - DO NOT MODIFY WITHOUT VERSION BUMP
# Any change to this file = breaking change = major version increment

from dataclasses import dataclass
from typing import ClassVar, Tuple


# (epoch_millis, value) as returned by the market data provider
ChartPoint = Tuple[float, float]

# Numeric attributes carried by every observation
ATTRIBUTES = ("price", "volume", "market_cap")


@dataclass(frozen=True)
class ChartSeries:
    """
    Raw provider response: three parallel time-stamped series.

    Same index = same timestamp. Nothing guarantees the provider keeps
    them aligned, so consumers must call is_aligned() before indexing.
    """

    prices: Tuple[ChartPoint, ...]
    market_caps: Tuple[ChartPoint, ...]
    total_volumes: Tuple[ChartPoint, ...]

    def __len__(self) -> int:
        return len(self.prices)

    def lengths(self) -> Tuple[int, int, int]:
        return len(self.prices), len(self.market_caps), len(self.total_volumes)

    def is_aligned(self) -> bool:
        return len(set(self.lengths())) == 1

    def slice(self, start: int, stop: int) -> "ChartSeries":
        """Apply one index range to all three series."""
        return ChartSeries(
            prices=self.prices[start:stop],
            market_caps=self.market_caps[start:stop],
            total_volumes=self.total_volumes[start:stop],
        )


@dataclass(frozen=True)
class Observation:
    """
    One timestamped market record, raw scale.

    Design principles:
    - Immutable (frozen=True prevents mutation bugs)
    - Timestamps are RFC3339 UTC strings at second precision
    - Non-decreasing timestamps across a series

    Schema Version: 1.0.0
    """

    SCHEMA_VERSION: ClassVar[str] = "1.0.0"

    timestamp: str        # e.g. "2024-01-01T00:00:00Z"
    price: float          # Quote-currency price
    volume: float         # Total 24h trading volume
    market_cap: float     # Market capitalization


@dataclass(frozen=True)
class NormalizedObservation:
    """
    Observation rescaled with shared min-max bounds.

    Historical values land in [0, 1]. Live values may fall outside that
    range when the market moves beyond the historical extremes.
    """

    SCHEMA_VERSION: ClassVar[str] = "1.0.0"

    timestamp: str
    price: float
    volume: float
    market_cap: float


@dataclass(frozen=True)
class DatasetSplit:
    """Temporal train/test split. Training is the prefix, testing the suffix."""

    training: Tuple[Observation, ...]
    testing: Tuple[Observation, ...]

    def __len__(self) -> int:
        return len(self.training) + len(self.testing)
