"""
Run the price predictor against CoinGecko.
Trains on the full history, evaluates, then polls until SIGINT/SIGTERM.

Usage:
    python app/run_predictor.py

Configuration comes from PREDICTOR_* environment variables (a .env file in the
working directory is loaded first).
"""

import logging
import os
import signal
import sys
import threading

from dotenv import load_dotenv

from market_data_client import CoinGeckoClient
from pipeline_config import PredictorConfig
from pipeline_errors import FetchError, FitError
from prediction_pipeline import PredictionPipeline

logger = logging.getLogger(__name__)


def setup_logging():
    level = os.environ.get("PREDICTOR_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def install_signal_handlers(stop_event: threading.Event):
    def handle_signal(signum, frame):
        logger.info("Received signal %s, shutting down", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)


def main() -> int:
    load_dotenv()
    setup_logging()

    config = PredictorConfig.from_env()
    logger.info("Predicting %s/%s", config.coin_id, config.currency)

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    with CoinGeckoClient(
        base_url=config.base_url,
        api_key=config.api_key,
        timeout_seconds=config.request_timeout_seconds,
    ) as client:
        pipeline = PredictionPipeline(config, client)
        try:
            pipeline.run(stop_event)
        except FetchError as e:
            logger.error("Error retrieving historical data: %s", e)
            return 1
        except FitError as e:
            logger.error("Error training the model: %s", e)
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
