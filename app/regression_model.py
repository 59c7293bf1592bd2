# regression_model.py
# Price ~ market cap. One predictor, one intercept, fitted exactly once.

import logging
from typing import Optional, Sequence

import numpy as np

import least_squares
from least_squares import FittedModel
from market_schema import NormalizedObservation
from pipeline_errors import PredictionError

logger = logging.getLogger(__name__)

OBSERVED_NAME = "Price"
VARIABLE_NAMES = ("MarketCap",)


class RegressionModel:
    """
    Single-feature linear regression on normalized observations.

    Lifecycle:
    - Constructed empty
    - fit() once over the full training set
    - Read-only afterwards; predict() may be called indefinitely and
      concurrently since the fitted coefficients never change
    """

    def __init__(self):
        self._fitted: Optional[FittedModel] = None

    @property
    def is_fitted(self) -> bool:
        return self._fitted is not None

    @property
    def fitted(self) -> FittedModel:
        if self._fitted is None:
            raise RuntimeError("RegressionModel is not fitted. Call fit() first.")
        return self._fitted

    @property
    def intercept(self) -> float:
        return self.fitted.intercept

    @property
    def slope(self) -> float:
        return self.fitted.coefficients[0]

    def fit(self, training_set: Sequence[NormalizedObservation]) -> "RegressionModel":
        """
        Train on (market_cap -> price) pairs.

        Args:
            training_set: Normalized training observations

        Returns:
            self

        Raises:
            RuntimeError: If the model was already fitted
            FitError: If the solve is singular or unstable
        """
        if self._fitted is not None:
            raise RuntimeError("RegressionModel is already fitted; models are fitted once")

        points = [
            least_squares.data_point(observation.price, [observation.market_cap])
            for observation in training_set
        ]

        # FitError propagates; self._fitted stays None so no partial model exists
        self._fitted = least_squares.fit(OBSERVED_NAME, VARIABLE_NAMES, points)

        logger.debug("Fitted %s on %d observations", self._fitted.formula, len(points))
        return self

    def predict(self, market_cap: float) -> float:
        """
        Predicted normalized price at a normalized market cap.

        Raises:
            RuntimeError: If the model is not fitted
            PredictionError: If the prediction cannot be computed or is not finite
        """
        fitted = self.fitted

        try:
            prediction = fitted.predict([market_cap])
        except (TypeError, ValueError) as e:
            raise PredictionError(f"Prediction failed for market_cap={market_cap!r}: {e}") from e

        if not np.isfinite(prediction):
            raise PredictionError(
                f"Non-finite prediction {prediction} for market_cap={market_cap!r}"
            )

        return prediction

    def summary(self) -> str:
        return self.fitted.summary()

    def __repr__(self) -> str:
        if self._fitted is None:
            return "RegressionModel(unfitted)"
        return f"RegressionModel({self._fitted.formula})"


def train_model(training_set: Sequence[NormalizedObservation]) -> RegressionModel:
    """Construct and fit in one step."""
    return RegressionModel().fit(training_set)
