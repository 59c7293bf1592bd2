# series_converter.py
# Turns three parallel provider series into one record per timestamp
# Fails loudly on misaligned input instead of indexing past the end

from datetime import datetime, timezone
from typing import List, Sequence

import pandas as pd

from market_schema import ChartPoint, ChartSeries, Observation
from pipeline_errors import AlignmentError, FetchError


RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(epoch_millis: float) -> str:
    """
    Epoch millis -> whole epoch seconds -> RFC3339 UTC.

    Raises:
        FetchError: If the timestamp is not a representable date
    """
    try:
        seconds = int(epoch_millis // 1000)
        return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime(RFC3339_FORMAT)
    except (ValueError, OverflowError, OSError) as e:
        raise FetchError(
            f"Malformed response: timestamp {epoch_millis!r} ms is out of range ({e})",
            details={"epoch_ms": epoch_millis},
        ) from e


def _check_alignment(
    prices: Sequence[ChartPoint],
    market_caps: Sequence[ChartPoint],
    total_volumes: Sequence[ChartPoint],
) -> None:
    lengths = (len(prices), len(market_caps), len(total_volumes))
    if len(set(lengths)) != 1:
        raise AlignmentError(
            f"Series length mismatch: prices={lengths[0]}, "
            f"market_caps={lengths[1]}, total_volumes={lengths[2]}",
            details={"lengths": lengths},
        )


def convert_series(
    prices: Sequence[ChartPoint],
    market_caps: Sequence[ChartPoint],
    total_volumes: Sequence[ChartPoint],
) -> List[Observation]:
    """
    Merge index-aligned series into observations.

    The price series supplies the timestamp for each row.

    Args:
        prices: (epoch_millis, price) pairs
        market_caps: (epoch_millis, market_cap) pairs
        total_volumes: (epoch_millis, volume) pairs

    Returns:
        One Observation per index, in input order

    Raises:
        AlignmentError: If lengths differ or timestamps go backwards
        FetchError: If a timestamp is not a representable date
    """
    _check_alignment(prices, market_caps, total_volumes)

    if len(prices) == 0:
        return []

    frame = pd.DataFrame({
        "epoch_ms": [float(point[0]) for point in prices],
        "price": [float(point[1]) for point in prices],
        "volume": [float(point[1]) for point in total_volumes],
        "market_cap": [float(point[1]) for point in market_caps],
    })

    if not frame["epoch_ms"].is_monotonic_increasing:
        raise AlignmentError(
            "TEMPORAL INCONSISTENCY: price timestamps are not sorted. "
            "This could indicate data corruption."
        )

    frame["timestamp"] = frame["epoch_ms"].map(format_timestamp)

    return [
        Observation(
            timestamp=row.timestamp,
            price=float(row.price),
            volume=float(row.volume),
            market_cap=float(row.market_cap),
        )
        for row in frame.itertuples(index=False)
    ]


def convert_chart(chart: ChartSeries) -> List[Observation]:
    """Convert a whole provider response."""
    return convert_series(chart.prices, chart.market_caps, chart.total_volumes)


def latest_observation(chart: ChartSeries) -> Observation:
    """
    Most recent observation of a short-range response.

    Raises:
        AlignmentError: If the series lengths differ
        FetchError: If the response holds no points
    """
    _check_alignment(chart.prices, chart.market_caps, chart.total_volumes)

    if len(chart) == 0:
        raise FetchError("Provider returned an empty series, no latest observation")

    return convert_series(
        chart.prices[-1:], chart.market_caps[-1:], chart.total_volumes[-1:]
    )[0]
