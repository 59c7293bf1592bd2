# evaluator.py
# Held-out evaluation: mean squared error of predicted vs observed price

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from market_schema import NormalizedObservation
from pipeline_errors import InsufficientTestDataError
from regression_model import RegressionModel


@dataclass(frozen=True)
class EvaluationReport:
    """Evaluation metrics on the normalized price scale."""

    mse: float
    rmse: float
    n_samples: int


def compute_mse(observed: Sequence[float], predicted: Sequence[float]) -> float:
    """
    Mean squared error between two equal-length sequences.

    Raises:
        ValueError: If lengths differ
        InsufficientTestDataError: If both are empty
    """
    observed_array = np.asarray(observed, dtype=float)
    predicted_array = np.asarray(predicted, dtype=float)

    if observed_array.shape != predicted_array.shape:
        raise ValueError(
            f"Length mismatch: {observed_array.size} observed vs "
            f"{predicted_array.size} predicted"
        )

    if observed_array.size == 0:
        raise InsufficientTestDataError("Insufficient test data: MSE over zero samples is undefined")

    return float(np.mean((observed_array - predicted_array) ** 2))


def evaluate_model(model: RegressionModel, testing_set: Sequence[NormalizedObservation]) -> float:
    """
    MSE = (1/n) * sum((observed_price - predict(market_cap))^2)

    Raises:
        InsufficientTestDataError: If testing_set is empty
        PredictionError: If the model fails on a test observation
    """
    if len(testing_set) == 0:
        raise InsufficientTestDataError(
            "Insufficient test data: no held-out observations to evaluate"
        )

    observed = [observation.price for observation in testing_set]
    predicted = [model.predict(observation.market_cap) for observation in testing_set]

    return compute_mse(observed, predicted)


def build_evaluation_report(
    model: RegressionModel,
    testing_set: Sequence[NormalizedObservation],
) -> EvaluationReport:
    mse = evaluate_model(model, testing_set)
    return EvaluationReport(mse=mse, rmse=float(np.sqrt(mse)), n_samples=len(testing_set))
