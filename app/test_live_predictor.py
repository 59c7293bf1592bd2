# test_live_predictor.py
# Live loop liveness - failures are logged, the next tick still runs

import logging
import threading

import pytest

from dataset_splitter import split_dataset
from live_predictor import LivePredictor, PredictionStats, PredictorState
from market_schema import ChartSeries
from min_max_normalizer import ObservationNormalizer
from pipeline_errors import FetchError
from regression_model import RegressionModel

BASE_MS = 1_704_067_200_000
HOUR_MS = 3_600_000


def create_chart(n_points: int, start: int = 0, cap_step: float = 1e7) -> ChartSeries:
    """Hourly chart where price = 2 * market cap (scaled to a realistic price)"""
    times = [BASE_MS + (start + i) * HOUR_MS for i in range(n_points)]
    caps = [1e9 + cap_step * (start + i) for i in range(n_points)]
    return ChartSeries(
        prices=tuple((t, 2e-8 * c) for t, c in zip(times, caps)),
        market_caps=tuple((t, c) for t, c in zip(times, caps)),
        total_volumes=tuple((t, 5e6 + 1e4 * (start + i)) for i, t in enumerate(times)),
    )


def fit_components(history: ChartSeries):
    split = split_dataset(history, 0.8)
    normalizer = ObservationNormalizer().fit(split.training + split.testing)
    model = RegressionModel().fit(normalizer.normalize_many(split.training))
    return model, normalizer


class ScriptedProvider:
    """Returns the live chart, failing on the listed call numbers"""

    def __init__(self, chart: ChartSeries, fail_on=(), on_call=None):
        self.chart = chart
        self.fail_on = set(fail_on)
        self.on_call = on_call
        self.calls = []

    def fetch_chart(self, coin_id, currency, days):
        self.calls.append((coin_id, currency, days))
        if self.on_call:
            self.on_call(len(self.calls))
        if len(self.calls) in self.fail_on:
            raise FetchError("simulated provider outage")
        return self.chart


def make_predictor(provider, interval: float = 0.0, **kwargs) -> LivePredictor:
    model, normalizer = fit_components(create_chart(50))
    return LivePredictor(
        provider=provider,
        model=model,
        normalizer=normalizer,
        coin_id="chainlink",
        currency="usd",
        interval_seconds=interval,
        **kwargs,
    )


def test_single_tick_prediction():
    """
    Test 1: One Cycle

    Latest point of the short-range series, scaled with training bounds,
    predicted price reported back in currency.
    """
    live_chart = create_chart(3, start=20)
    provider = ScriptedProvider(live_chart)
    predictor = make_predictor(provider)

    prediction = predictor.run_once()

    assert provider.calls == [("chainlink", "usd", "1")]
    assert prediction is not None
    assert prediction.timestamp == "2024-01-01T22:00:00Z"
    assert prediction.actual_price == pytest.approx(2e-8 * (1e9 + 22 * 1e7))
    assert prediction.predicted_price == pytest.approx(prediction.actual_price, rel=1e-9)
    assert abs(prediction.error) < 1e-9
    assert predictor.state == PredictorState.IDLE
    print(f"✅ Predicted {prediction.predicted_price:.4f}, actual {prediction.actual_price:.4f}")


def test_state_during_cycle():
    """Test 2: Predictor is PREDICTING while fetching, IDLE afterwards"""
    states = []
    provider = ScriptedProvider(create_chart(3, start=10))
    predictor = make_predictor(provider)
    provider.on_call = lambda _: states.append(predictor.state)

    predictor.run_once()

    assert states == [PredictorState.PREDICTING]
    assert predictor.state == PredictorState.IDLE


def test_fetch_failure_does_not_stop_loop(caplog):
    """
    Test 3: Loop Liveness

    A failed fetch on tick 1 is logged; ticks 2 and 3 still run.
    """
    provider = ScriptedProvider(create_chart(3, start=10), fail_on={1})
    predictor = make_predictor(provider)

    with caplog.at_level(logging.WARNING, logger="live_predictor"):
        stats = predictor.run(max_ticks=3)

    assert len(provider.calls) == 3
    assert stats.total_ticks == 3
    assert stats.fetch_failures == 1
    assert stats.successful_ticks == 2
    assert "simulated provider outage" in caplog.text
    assert isinstance(stats.last_error, FetchError)


def test_misaligned_live_response_is_a_fetch_failure():
    """Test 4: Alignment errors in the live response are skipped like fetch errors"""
    chart = create_chart(3, start=10)
    broken = ChartSeries(
        prices=chart.prices,
        market_caps=chart.market_caps[:2],
        total_volumes=chart.total_volumes,
    )
    predictor = make_predictor(ScriptedProvider(broken))

    assert predictor.run_once() is None
    assert predictor.stats.fetch_failures == 1


def test_empty_live_response():
    """Test 5: Empty short-range series is a fetch failure"""
    empty = ChartSeries(prices=(), market_caps=(), total_volumes=())
    predictor = make_predictor(ScriptedProvider(empty))

    assert predictor.run_once() is None
    assert predictor.stats.fetch_failures == 1


def test_out_of_range_live_timestamp_is_a_fetch_failure():
    """Test 5b: An unrepresentable live timestamp counts as a fetch failure"""
    live = ChartSeries(
        prices=((1e17, 25.0),),
        market_caps=((1e17, 1.2e9),),
        total_volumes=((1e17, 5e6),),
    )
    predictor = make_predictor(ScriptedProvider(live))

    assert predictor.run_once() is None
    assert predictor.stats.fetch_failures == 1
    assert predictor.stats.prediction_failures == 0


def test_report_line(caplog):
    """Test 5c: Each successful tick reports predicted vs actual price"""
    predictor = make_predictor(ScriptedProvider(create_chart(3, start=20)))

    with caplog.at_level(logging.INFO, logger="live_predictor"):
        prediction = predictor.run_once()

    expected = (
        f"Real-time Predicted Price: {prediction.predicted_price:.2f}, "
        f"Actual Price: {prediction.actual_price:.2f}"
    )
    assert expected in caplog.text


def test_prediction_failure_is_classified():
    """Test 6: Non-finite input yields a logged prediction failure, not a crash"""
    chart = create_chart(2, start=10)
    poisoned = ChartSeries(
        prices=chart.prices,
        market_caps=chart.market_caps[:1] + ((chart.market_caps[1][0], float("inf")),),
        total_volumes=chart.total_volumes,
    )
    predictor = make_predictor(ScriptedProvider(poisoned))

    assert predictor.run_once() is None
    assert predictor.stats.prediction_failures == 1
    assert predictor.state == PredictorState.IDLE


def test_stop_event_before_start():
    """Test 7: A pre-set stop event means zero ticks"""
    stop_event = threading.Event()
    stop_event.set()
    provider = ScriptedProvider(create_chart(3))
    predictor = make_predictor(provider, stop_event=stop_event)

    stats = predictor.run()

    assert provider.calls == []
    assert stats.total_ticks == 0


def test_stop_during_run():
    """Test 8: stop() ends an unbounded loop before the next tick"""
    provider = ScriptedProvider(create_chart(3, start=5))
    predictor = make_predictor(provider)
    provider.on_call = lambda call: predictor.stop() if call == 2 else None

    stats = predictor.run()

    assert len(provider.calls) == 2
    assert stats.total_ticks == 2


def test_interval_paces_ticks():
    """Test 9: Ticks wait for the interval; stop interrupts the wait"""
    provider = ScriptedProvider(create_chart(3, start=5))
    predictor = make_predictor(provider, interval=0.05)

    stats = predictor.run(max_ticks=2)

    assert stats.total_ticks == 2
    assert stats.successful_ticks == 2


def test_requires_fitted_components():
    """Test 10: Refuses to start without a model or bounds"""
    model, normalizer = fit_components(create_chart(20))

    with pytest.raises(ValueError, match="fitted model"):
        LivePredictor(ScriptedProvider(create_chart(2)), RegressionModel(), normalizer, "c", "usd")

    with pytest.raises(ValueError, match="normalization bounds"):
        LivePredictor(ScriptedProvider(create_chart(2)), model, ObservationNormalizer(), "c", "usd")


def test_prediction_stats():
    """Test 11: Stats bookkeeping"""
    stats = PredictionStats()
    assert stats.get_mean_absolute_error() is None
    assert repr(stats) == "PredictionStats(no ticks)"

    stats.record_fetch_failure(FetchError("down"))
    assert stats.failed_ticks == 1
    assert "fetch_failures=1" in repr(stats)

    stats.reset()
    assert stats.total_ticks == 0
