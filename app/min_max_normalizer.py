"""
Min-Max Normalizer
Rescales observation attributes into [0, 1] using bounds from a reference population.
Supports train/eval mode so bounds are fitted once and frozen for the rest of the run.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np

from market_schema import ATTRIBUTES, NormalizedObservation, Observation
from pipeline_errors import DegenerateRangeError

logger = logging.getLogger(__name__)

# The model reads market cap and predicts price; volume is carried along only
REQUIRED_ATTRIBUTES = ("price", "market_cap")


def compute_bounds(population: Iterable[Observation], attribute: str) -> Tuple[float, float]:
    """
    Scan a population for the min and max of one attribute.

    Args:
        population: Observations to scan
        attribute: One of ATTRIBUTES

    Returns:
        (min, max). An empty population returns the (+inf, -inf) sentinels.

    Raises:
        ValueError: If attribute is unknown
    """
    if attribute not in ATTRIBUTES:
        raise ValueError(f"Unknown attribute '{attribute}', expected one of {ATTRIBUTES}")

    min_value = math.inf
    max_value = -math.inf

    for observation in population:
        value = getattr(observation, attribute)
        if value < min_value:
            min_value = value
        if value > max_value:
            max_value = value

    return min_value, max_value


def normalize(value: float, min_value: float, max_value: float, attribute: str = "value") -> float:
    """
    (value - min) / (max - min)

    Raises:
        DegenerateRangeError: If max == min or either bound is non-finite
    """
    if not (np.isfinite(min_value) and np.isfinite(max_value)) or max_value == min_value:
        raise DegenerateRangeError(attribute, min_value, max_value)
    return (value - min_value) / (max_value - min_value)


def denormalize(normalized_value: float, min_value: float, max_value: float) -> float:
    """Inverse of normalize: value * (max - min) + min."""
    return normalized_value * (max_value - min_value) + min_value


@dataclass(frozen=True)
class MinMaxBounds:
    """Fitted (min, max) pair for one attribute."""

    attribute: str
    min_value: float
    max_value: float

    @property
    def is_degenerate(self) -> bool:
        return (
            not (np.isfinite(self.min_value) and np.isfinite(self.max_value))
            or self.max_value == self.min_value
        )

    def normalize(self, value: float) -> float:
        return normalize(value, self.min_value, self.max_value, self.attribute)

    def denormalize(self, normalized_value: float) -> float:
        return denormalize(normalized_value, self.min_value, self.max_value)

    def __repr__(self) -> str:
        return f"MinMaxBounds({self.attribute}: min={self.min_value:.6g}, max={self.max_value:.6g})"


class ObservationNormalizer:
    """
    Holds one MinMaxBounds per observation attribute.

    Supports two modes:
    - train: fit() is allowed
    - eval: bounds are frozen, fit() raises

    fit() switches to eval mode on success. Bounds must come from every
    observation that will ever be normalized with them (training ∪ testing),
    and live observations reuse them. Recomputing from one live sample
    would give min == max.
    """

    def __init__(self, mode: str = "train"):
        """
        Initialize normalizer.

        Args:
            mode: "train" or "eval" - controls whether fit() is allowed
        """
        if mode not in ["train", "eval"]:
            raise ValueError(f"Mode must be 'train' or 'eval', got '{mode}'")

        self.mode = mode
        self.bounds: Dict[str, MinMaxBounds] = {}

    def set_mode(self, mode: str):
        """Set the mode (train/eval)."""
        if mode not in ["train", "eval"]:
            raise ValueError(f"Mode must be 'train' or 'eval', got '{mode}'")
        self.mode = mode

    @property
    def is_fitted(self) -> bool:
        return len(self.bounds) == len(ATTRIBUTES)

    def fit(self, population: Sequence[Observation]) -> "ObservationNormalizer":
        """
        Compute bounds for every attribute, then freeze.

        Args:
            population: Union of all observations sharing this scale

        Returns:
            self, now in eval mode

        Raises:
            RuntimeError: If called in eval mode
            ValueError: If population is empty
            DegenerateRangeError: If price or market cap is single-valued

        A single-valued volume is kept with a warning and normalizes to 0.0.
        """
        if self.mode == "eval":
            raise RuntimeError(
                "Cannot fit ObservationNormalizer in eval mode. "
                "Bounds are frozen once fitted."
            )

        if len(population) == 0:
            raise ValueError("Cannot fit normalization bounds on an empty population")

        bounds = {}
        for attribute in ATTRIBUTES:
            min_value, max_value = compute_bounds(population, attribute)
            fitted = MinMaxBounds(attribute, min_value, max_value)
            if fitted.is_degenerate:
                if attribute in REQUIRED_ATTRIBUTES:
                    raise DegenerateRangeError(attribute, min_value, max_value)
                logger.warning(
                    "Degenerate range for %s (min=%s, max=%s), normalizing it to 0.0",
                    attribute, min_value, max_value,
                )
            bounds[attribute] = fitted

        self.bounds = bounds
        self.set_mode("eval")
        return self

    def _require_fitted(self):
        if not self.is_fitted:
            raise RuntimeError("ObservationNormalizer has no bounds. Call fit() first.")

    def normalize(self, observation: Observation) -> NormalizedObservation:
        """Rescale one observation with the stored bounds."""
        self._require_fitted()
        volume_bounds = self.bounds["volume"]
        volume = 0.0 if volume_bounds.is_degenerate else volume_bounds.normalize(observation.volume)
        return NormalizedObservation(
            timestamp=observation.timestamp,
            price=self.bounds["price"].normalize(observation.price),
            volume=volume,
            market_cap=self.bounds["market_cap"].normalize(observation.market_cap),
        )

    def normalize_many(self, observations: Iterable[Observation]) -> List[NormalizedObservation]:
        return [self.normalize(observation) for observation in observations]

    def denormalize_price(self, normalized_price: float) -> float:
        """Map a normalized price (e.g. a model prediction) back to quote currency."""
        self._require_fitted()
        return self.bounds["price"].denormalize(normalized_price)

    def __repr__(self) -> str:
        if not self.is_fitted:
            return f"ObservationNormalizer(mode={self.mode}, unfitted)"
        bounds_summary = "\n".join([
            f"  {bounds}"
            for bounds in self.bounds.values()
        ])
        return f"ObservationNormalizer(mode={self.mode}):\n{bounds_summary}"
