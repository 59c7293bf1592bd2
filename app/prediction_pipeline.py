"""
Prediction Pipeline
Startup phase (fetch -> split -> normalize -> train -> evaluate), then hands
the fitted model to the live loop.

Startup fetch/fit errors are fatal and raised before the live loop starts.
An impossible evaluation is reported and skipped.
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple

from dataset_splitter import split_dataset
from evaluator import EvaluationReport, build_evaluation_report
from live_predictor import LivePredictor
from market_data_client import MarketDataProvider
from market_schema import DatasetSplit, NormalizedObservation
from min_max_normalizer import ObservationNormalizer
from pipeline_config import PredictorConfig
from pipeline_errors import DegenerateRangeError, EvaluationError, FetchError, FitError
from regression_model import RegressionModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainingOutcome:
    """Everything the live loop inherits from startup."""

    model: RegressionModel
    normalizer: ObservationNormalizer
    n_training: int
    n_testing: int
    evaluation: Optional[EvaluationReport]  # None when no evaluation was possible


class PredictionPipeline:
    """
    Wires config, provider and the model components together.

    Usage:
        with CoinGeckoClient() as client:
            pipeline = PredictionPipeline(PredictorConfig(), client)
            pipeline.run(stop_event)
    """

    def __init__(self, config: PredictorConfig, provider: MarketDataProvider):
        self.config = config
        self.provider = provider

    def load_historical_data(self) -> DatasetSplit:
        """
        Fetch the full history and split it temporally.

        Raises:
            FetchError: If the provider fails, returns misaligned series or no data
        """
        chart = self.provider.fetch_chart(
            self.config.coin_id, self.config.currency, self.config.history_range
        )

        if len(chart) == 0:
            raise FetchError(
                f"No historical data for {self.config.coin_id}/{self.config.currency}",
                recoverable=False,
            )

        return split_dataset(chart, self.config.split_ratio)

    def preprocess(
        self, split: DatasetSplit
    ) -> Tuple[ObservationNormalizer, List[NormalizedObservation], List[NormalizedObservation]]:
        """
        Fit bounds on training ∪ testing, then normalize both sides.

        Raises:
            FitError: If the history is degenerate (single-valued attribute)
        """
        normalizer = ObservationNormalizer(mode="train")
        try:
            normalizer.fit(split.training + split.testing)
        except DegenerateRangeError as e:
            raise FitError(f"Cannot normalize history: {e}") from e

        logger.debug("Normalization bounds: %r", normalizer)

        return (
            normalizer,
            normalizer.normalize_many(split.training),
            normalizer.normalize_many(split.testing),
        )

    def train(self, training_set: List[NormalizedObservation]) -> RegressionModel:
        """
        Raises:
            FitError: If no usable model can be fitted
        """
        model = RegressionModel().fit(training_set)
        logger.info("Trained Model Summary:\n%s", model.summary())
        return model

    def evaluate(
        self, model: RegressionModel, testing_set: List[NormalizedObservation]
    ) -> Optional[EvaluationReport]:
        """MSE on the held-out split, or None when no evaluation is possible."""
        try:
            report = build_evaluation_report(model, testing_set)
        except EvaluationError as e:
            logger.warning("No evaluation possible: %s", e)
            return None

        logger.info(
            "Model evaluation results (MSE): %.6g (RMSE %.6g, n=%d)",
            report.mse, report.rmse, report.n_samples,
        )
        return report

    def run_startup(self) -> TrainingOutcome:
        """
        Run the startup phase to completion.

        Raises:
            FetchError: If historical data cannot be loaded
            FitError: If no usable model can be built
        """
        split = self.load_historical_data()
        normalizer, training_set, testing_set = self.preprocess(split)
        model = self.train(training_set)
        evaluation = self.evaluate(model, testing_set)

        return TrainingOutcome(
            model=model,
            normalizer=normalizer,
            n_training=len(training_set),
            n_testing=len(testing_set),
            evaluation=evaluation,
        )

    def build_live_predictor(
        self,
        outcome: TrainingOutcome,
        stop_event: Optional[threading.Event] = None,
    ) -> LivePredictor:
        return LivePredictor(
            provider=self.provider,
            model=outcome.model,
            normalizer=outcome.normalizer,
            coin_id=self.config.coin_id,
            currency=self.config.currency,
            interval_seconds=self.config.poll_interval_seconds,
            live_range=self.config.live_range,
            stop_event=stop_event,
        )

    def run(
        self,
        stop_event: Optional[threading.Event] = None,
        max_ticks: Optional[int] = None,
    ) -> TrainingOutcome:
        """
        Startup, then the live loop until stop_event is set.

        Raises:
            FetchError: If historical data cannot be loaded
            FitError: If no usable model can be built
        """
        outcome = self.run_startup()
        predictor = self.build_live_predictor(outcome, stop_event)
        stats = predictor.run(max_ticks=max_ticks)
        logger.info("Live loop summary: %r", stats)
        return outcome
