"""
Pipeline Error Types
Every failure the predictor can hit, classified by whether the run survives it.

Fatal at startup: FetchError, FitError.
Recoverable: EvaluationError (startup), FetchError and PredictionError (per tick).
"""

from typing import Any, Dict, Optional


class PredictorError(Exception):
    """Base exception for predictor errors."""

    def __init__(
        self,
        message: str,
        recoverable: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.recoverable = recoverable
        self.details = details or {}


class FetchError(PredictorError):
    """Provider unreachable, timed out, or returned a malformed/short response."""
    pass


class AlignmentError(FetchError):
    """Parallel series disagree in length or ordering."""
    pass


class FitError(PredictorError):
    """Training data is singular or degenerate. No usable model exists."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, recoverable=False, details=details)


class EvaluationError(PredictorError):
    """Model could not be evaluated."""
    pass


class InsufficientTestDataError(EvaluationError):
    """Test set is empty; MSE over zero elements is undefined."""
    pass


class PredictionError(PredictorError):
    """The fitted model could not produce a finite prediction."""
    pass


class DegenerateRangeError(ValueError):
    """Min-max normalization over a single-valued range (max == min)."""

    def __init__(self, attribute: str, min_value: float, max_value: float):
        super().__init__(
            f"DEGENERATE RANGE for {attribute}: min={min_value}, max={max_value}. "
            f"Cannot rescale a single-valued series."
        )
        self.attribute = attribute
        self.min_value = min_value
        self.max_value = max_value
