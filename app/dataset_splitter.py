# dataset_splitter.py
# Temporal train/test split of raw provider series
# Train on the past, test on the "future" - no shuffling, ever

import logging
import math
from typing import Tuple

from market_schema import ChartSeries, DatasetSplit
from pipeline_errors import AlignmentError
from series_converter import convert_chart

logger = logging.getLogger(__name__)

DEFAULT_SPLIT_RATIO = 0.8


def split_index(n: int, ratio: float = DEFAULT_SPLIT_RATIO) -> int:
    """
    Index of the first testing element: floor(ratio * n).

    Raises:
        ValueError: If n is negative or ratio is outside (0, 1]
    """
    if n < 0:
        raise ValueError(f"Series length must be >= 0, got {n}")
    if not 0.0 < ratio <= 1.0:
        raise ValueError(f"Split ratio must be in (0, 1], got {ratio}")
    return int(math.floor(n * ratio))


def split_chart(
    chart: ChartSeries,
    ratio: float = DEFAULT_SPLIT_RATIO,
) -> Tuple[ChartSeries, ChartSeries]:
    """
    Cut all three raw series at the same index.

    Returns:
        (training_chart, testing_chart)

    Raises:
        AlignmentError: If the three series differ in length
    """
    if not chart.is_aligned():
        prices, market_caps, volumes = chart.lengths()
        raise AlignmentError(
            f"Cannot split misaligned series: prices={prices}, "
            f"market_caps={market_caps}, total_volumes={volumes}",
            details={"lengths": chart.lengths()},
        )

    n = len(chart)
    cut = split_index(n, ratio)
    return chart.slice(0, cut), chart.slice(cut, n)


def split_dataset(
    chart: ChartSeries,
    ratio: float = DEFAULT_SPLIT_RATIO,
) -> DatasetSplit:
    """
    Cut-then-convert: split raw series, then convert each side.

    Edge cases:
    - n = 0 -> both sides empty
    - n = 1 -> training holds the single element, testing is empty

    Raises:
        AlignmentError: On misaligned series or timestamps that run backwards
    """
    training_chart, testing_chart = split_chart(chart, ratio)

    training = tuple(convert_chart(training_chart))
    testing = tuple(convert_chart(testing_chart))

    # RFC3339 UTC at fixed width sorts lexically in time order
    if training and testing and training[-1].timestamp > testing[0].timestamp:
        raise AlignmentError(
            f"FUTURE LEAKAGE: last training timestamp {training[-1].timestamp} "
            f"is after first testing timestamp {testing[0].timestamp}"
        )

    logger.info(
        "Split %d observations into %d training / %d testing (ratio=%.2f)",
        len(chart), len(training), len(testing), ratio,
    )

    return DatasetSplit(training=training, testing=testing)
