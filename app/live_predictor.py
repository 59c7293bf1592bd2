# live_predictor.py
# Timer-driven fetch -> predict -> report loop
# One cycle at a time. A failed tick is logged and skipped, never fatal.

import logging
import threading
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from market_data_client import MarketDataProvider
from min_max_normalizer import ObservationNormalizer
from pipeline_errors import FetchError, PredictionError
from regression_model import RegressionModel
from series_converter import latest_observation

logger = logging.getLogger(__name__)


class PredictorState(IntEnum):
    """Two-state machine driven by the ticker."""

    IDLE = 0        # Waiting for next tick
    PREDICTING = 1  # Running one fetch-predict-report cycle


@dataclass(frozen=True)
class LivePrediction:
    """Outcome of one successful tick."""

    timestamp: str
    predicted_price: float      # Quote currency
    actual_price: float         # Quote currency
    normalized_prediction: float
    market_cap: float           # Raw market cap the prediction was made from

    @property
    def error(self) -> float:
        return self.predicted_price - self.actual_price


class PredictionStats:
    """
    Tracks live loop health.

    Useful for diagnosing a flaky provider or a drifting model.
    """

    def __init__(self):
        self.reset()

    def record_success(self, prediction: LivePrediction):
        self.total_ticks += 1
        self.successful_ticks += 1
        self.absolute_error_sum += abs(prediction.error)
        self.last_prediction = prediction

    def record_fetch_failure(self, error: Exception):
        self.total_ticks += 1
        self.fetch_failures += 1
        self.last_error = error

    def record_prediction_failure(self, error: Exception):
        self.total_ticks += 1
        self.prediction_failures += 1
        self.last_error = error

    @property
    def failed_ticks(self) -> int:
        return self.total_ticks - self.successful_ticks

    def get_mean_absolute_error(self) -> Optional[float]:
        """Mean |predicted - actual| over successful ticks, None before the first."""
        if self.successful_ticks == 0:
            return None
        return self.absolute_error_sum / self.successful_ticks

    def reset(self):
        self.total_ticks = 0
        self.successful_ticks = 0
        self.fetch_failures = 0
        self.prediction_failures = 0
        self.absolute_error_sum = 0.0
        self.last_prediction: Optional[LivePrediction] = None
        self.last_error: Optional[Exception] = None

    def __repr__(self) -> str:
        if self.total_ticks == 0:
            return "PredictionStats(no ticks)"

        mae = self.get_mean_absolute_error()
        mae_text = "n/a" if mae is None else f"{mae:.4f}"

        return (
            f"PredictionStats(\n"
            f"  total_ticks={self.total_ticks},\n"
            f"  successful_ticks={self.successful_ticks},\n"
            f"  fetch_failures={self.fetch_failures},\n"
            f"  prediction_failures={self.prediction_failures},\n"
            f"  mean_absolute_error={mae_text}\n"
            f")"
        )


class LivePredictor:
    """
    Polls the provider on a fixed interval and compares prediction to reality.

    Design principles:
    - Uses the model fitted at startup, never refits
    - Normalizes live samples with the training-time bounds
    - Cycles are serialized; a slow fetch delays the next tick, missed
      ticks are dropped rather than queued
    - Runs until the stop event is set
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        model: RegressionModel,
        normalizer: ObservationNormalizer,
        coin_id: str,
        currency: str,
        interval_seconds: float = 5.0,
        live_range: str = "1",
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize live predictor.

        Args:
            provider: Market data source
            model: Fitted regression model
            normalizer: Normalizer holding the training-time bounds (eval mode)
            coin_id: Coin to poll
            currency: Quote currency
            interval_seconds: Tick interval
            live_range: Provider range for each poll (short window)
            stop_event: Cancellation signal; a fresh one is created if None
        """
        if not model.is_fitted:
            raise ValueError("LivePredictor requires a fitted model")
        if not normalizer.is_fitted:
            raise ValueError("LivePredictor requires fitted normalization bounds")
        if interval_seconds < 0:
            raise ValueError(f"interval_seconds must be >= 0, got {interval_seconds}")

        self.provider = provider
        self.model = model
        self.normalizer = normalizer
        self.coin_id = coin_id
        self.currency = currency
        self.interval_seconds = interval_seconds
        self.live_range = live_range
        self.stop_event = stop_event or threading.Event()

        self.state = PredictorState.IDLE
        self.stats = PredictionStats()

    def predict_latest(self) -> LivePrediction:
        """
        One fetch-predict cycle without error handling.

        Raises:
            FetchError: If the provider fails or returns a short/misaligned series
            PredictionError: If the model cannot produce a finite prediction
        """
        chart = self.provider.fetch_chart(self.coin_id, self.currency, self.live_range)
        latest = latest_observation(chart)

        normalized = self.normalizer.normalize(latest)
        normalized_prediction = self.model.predict(normalized.market_cap)

        return LivePrediction(
            timestamp=latest.timestamp,
            predicted_price=self.normalizer.denormalize_price(normalized_prediction),
            actual_price=latest.price,
            normalized_prediction=normalized_prediction,
            market_cap=latest.market_cap,
        )

    def run_once(self) -> Optional[LivePrediction]:
        """
        One tick: Idle -> Predicting -> Idle.

        Returns:
            The prediction, or None if the tick failed (failure is logged)
        """
        self.state = PredictorState.PREDICTING
        try:
            prediction = self.predict_latest()
        except FetchError as e:
            logger.warning("Error fetching latest data: %s", e)
            self.stats.record_fetch_failure(e)
            return None
        except PredictionError as e:
            logger.error("Error predicting price: %s", e)
            self.stats.record_prediction_failure(e)
            return None
        except Exception as e:
            # Unclassified errors still must not escape the loop
            logger.exception("Unexpected error in live prediction cycle: %s", e)
            self.stats.record_prediction_failure(e)
            return None
        finally:
            self.state = PredictorState.IDLE

        self.stats.record_success(prediction)
        logger.info(
            "Real-time Predicted Price: %.2f, Actual Price: %.2f (%s)",
            prediction.predicted_price,
            prediction.actual_price,
            prediction.timestamp,
        )
        return prediction

    def run(self, max_ticks: Optional[int] = None) -> PredictionStats:
        """
        Tick until the stop event is set (or max_ticks cycles have run).

        The first tick fires one interval after start.

        Args:
            max_ticks: Optional cap on cycles (None = run until stopped)

        Returns:
            Loop statistics
        """
        logger.info(
            "Starting live predictions for %s/%s every %.1fs",
            self.coin_id, self.currency, self.interval_seconds,
        )

        ticks = 0
        next_tick = time.monotonic() + self.interval_seconds

        while max_ticks is None or ticks < max_ticks:
            if self.stop_event.wait(max(0.0, next_tick - time.monotonic())):
                break

            self.run_once()
            ticks += 1

            next_tick += self.interval_seconds
            now = time.monotonic()
            if self.interval_seconds > 0 and next_tick <= now:
                missed = int((now - next_tick) // self.interval_seconds) + 1
                logger.debug("Cycle overran the interval, dropping %d tick(s)", missed)
                next_tick += missed * self.interval_seconds

        logger.info("Live predictions stopped after %d tick(s)", ticks)
        return self.stats

    def stop(self):
        """Request the loop to exit before its next tick."""
        self.stop_event.set()
