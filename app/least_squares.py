"""
Ordinary Least Squares
Generic fit/predict capability: one observed variable, N predictors, one intercept.
Singular or unstable solves raise FitError - a garbage model is never returned.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from pipeline_errors import FitError


@dataclass(frozen=True)
class DataPoint:
    """One training pair: observed value and its predictor vector."""

    observed: float
    variables: Tuple[float, ...]


def data_point(observed: float, variables: Sequence[float]) -> DataPoint:
    return DataPoint(observed=float(observed), variables=tuple(float(v) for v in variables))


@dataclass(frozen=True)
class FittedModel:
    """
    Immutable result of a least-squares pass.

    Safe to share between readers; predict() has no side effects.
    """

    observed_name: str
    variable_names: Tuple[str, ...]
    intercept: float
    coefficients: Tuple[float, ...]
    r_squared: Optional[float]  # None when the observed values are constant
    n_observations: int

    def predict(self, features: Sequence[float]) -> float:
        """
        Evaluate the fitted hyperplane.

        Raises:
            ValueError: If the feature count does not match the model
        """
        if len(features) != len(self.coefficients):
            raise ValueError(
                f"Expected {len(self.coefficients)} features "
                f"({', '.join(self.variable_names)}), got {len(features)}"
            )
        return float(self.intercept + np.dot(self.coefficients, np.asarray(features, dtype=float)))

    @property
    def formula(self) -> str:
        terms = "".join(
            f" + {name}*{coefficient:.4f}"
            for name, coefficient in zip(self.variable_names, self.coefficients)
        )
        return f"Predicted = {self.intercept:.4f}{terms}"

    def summary(self) -> str:
        r_squared = "n/a" if self.r_squared is None else f"{self.r_squared:.4f}"
        return (
            f"{self.observed_name}\n"
            f"{self.formula}\n"
            f"R2 = {r_squared}\n"
            f"N = {self.n_observations}"
        )

    def __str__(self) -> str:
        return self.summary()


def fit(
    observed_name: str,
    variable_names: Sequence[str],
    data_points: Iterable[DataPoint],
) -> FittedModel:
    """
    Fit observed ~ intercept + variables by least squares.

    Args:
        observed_name: Label of the target (for the summary)
        variable_names: Labels of the predictors, in feature order
        data_points: Training pairs

    Returns:
        FittedModel

    Raises:
        FitError: On too few points, shape mismatch, non-finite input,
                  a rank-deficient design matrix or non-finite coefficients
    """
    variable_names = tuple(variable_names)
    points = list(data_points)
    n_vars = len(variable_names)

    if n_vars == 0:
        raise FitError("At least one predictor variable is required")

    # Need more points than unknowns (intercept + coefficients) for a meaningful fit
    if len(points) < n_vars + 1:
        raise FitError(
            f"Not enough data: {len(points)} points for {n_vars + 1} unknowns",
            details={"n_observations": len(points)},
        )

    for index, point in enumerate(points):
        if len(point.variables) != n_vars:
            raise FitError(
                f"Data point {index} has {len(point.variables)} variables, "
                f"expected {n_vars}"
            )

    y = np.array([point.observed for point in points], dtype=float)
    x = np.array([point.variables for point in points], dtype=float)

    if not (np.all(np.isfinite(y)) and np.all(np.isfinite(x))):
        raise FitError("Training data contains NaN or infinite values")

    design = np.column_stack([np.ones(len(points)), x])

    try:
        solution, _, rank, _ = np.linalg.lstsq(design, y, rcond=None)
    except np.linalg.LinAlgError as e:
        raise FitError(f"Least-squares solve failed: {e}") from e

    if rank < design.shape[1]:
        raise FitError(
            f"Singular design matrix (rank {rank} < {design.shape[1]}). "
            f"A predictor has zero variance or predictors are collinear.",
            details={"rank": int(rank)},
        )

    if not np.all(np.isfinite(solution)):
        raise FitError("Least-squares solve produced non-finite coefficients")

    residuals = y - design @ solution
    ss_res = float(np.sum(residuals ** 2))
    ss_tot = float(np.sum((y - np.mean(y)) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else None

    return FittedModel(
        observed_name=observed_name,
        variable_names=variable_names,
        intercept=float(solution[0]),
        coefficients=tuple(float(c) for c in solution[1:]),
        r_squared=r_squared,
        n_observations=len(points),
    )
