# pipeline_config.py
# Run configuration, fixed at startup. No runtime reconfiguration.

import os
from dataclasses import dataclass
from typing import Mapping, Optional


ENV_PREFIX = "PREDICTOR_"


@dataclass(frozen=True)
class PredictorConfig:
    """
    Everything the pipeline needs to know about the market it watches.

    Attributes:
        coin_id: CoinGecko coin identifier
        currency: Quote currency for price and market cap
        split_ratio: Fraction of history used for training (prefix)
        poll_interval_seconds: Live loop tick interval
        history_range: Provider range for the training history
        live_range: Provider range for each live poll
        request_timeout_seconds: Per-request timeout for the provider
        base_url: Provider REST endpoint
        api_key: Optional demo API key
    """

    coin_id: str = "chainlink"
    currency: str = "usd"
    split_ratio: float = 0.8
    poll_interval_seconds: float = 5.0
    history_range: str = "max"
    live_range: str = "1"
    request_timeout_seconds: float = 10.0
    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: Optional[str] = None

    def __post_init__(self):
        if not self.coin_id:
            raise ValueError("coin_id must not be empty")
        if not self.currency:
            raise ValueError("currency must not be empty")
        if not 0.0 < self.split_ratio <= 1.0:
            raise ValueError(f"split_ratio must be in (0, 1], got {self.split_ratio}")
        if self.poll_interval_seconds < 0:
            raise ValueError(
                f"poll_interval_seconds must be >= 0, got {self.poll_interval_seconds}"
            )
        if self.request_timeout_seconds <= 0:
            raise ValueError(
                f"request_timeout_seconds must be > 0, got {self.request_timeout_seconds}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PredictorConfig":
        """
        Build config from PREDICTOR_* environment variables.

        Unset variables fall back to the defaults above.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Raises:
            ValueError: If a numeric variable cannot be parsed or fails validation
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def get(name: str, default):
            return env.get(f"{ENV_PREFIX}{name}", default)

        return cls(
            coin_id=get("COIN_ID", defaults.coin_id),
            currency=get("CURRENCY", defaults.currency),
            split_ratio=float(get("SPLIT_RATIO", defaults.split_ratio)),
            poll_interval_seconds=float(
                get("POLL_INTERVAL_SECONDS", defaults.poll_interval_seconds)
            ),
            history_range=get("HISTORY_RANGE", defaults.history_range),
            live_range=get("LIVE_RANGE", defaults.live_range),
            request_timeout_seconds=float(
                get("REQUEST_TIMEOUT_SECONDS", defaults.request_timeout_seconds)
            ),
            base_url=get("BASE_URL", defaults.base_url),
            api_key=get("API_KEY", defaults.api_key) or None,
        )
