"""
Market Data Client
Fetches price, market cap and volume chart series from the CoinGecko REST API.

- One call shape: /coins/{id}/market_chart?vs_currency=..&days=..
- Every request carries a timeout; expiry is a recoverable FetchError
- Malformed payloads fail loudly as FetchError, never as KeyError/IndexError
"""

import logging
from typing import Any, List, Optional, Protocol, Tuple

import httpx

from market_schema import ChartPoint, ChartSeries
from pipeline_errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"

SERIES_KEYS = ("prices", "market_caps", "total_volumes")


class MarketDataProvider(Protocol):
    """Anything that can return aligned chart series for a coin."""

    def fetch_chart(self, coin_id: str, currency: str, days: str) -> ChartSeries:
        ...


def _parse_points(payload: Any, key: str) -> Tuple[ChartPoint, ...]:
    raw_points = payload.get(key)
    if not isinstance(raw_points, list):
        raise FetchError(
            f"Malformed response: '{key}' is missing or not a list",
            details={"key": key},
        )

    points: List[ChartPoint] = []
    for index, raw in enumerate(raw_points):
        if not isinstance(raw, (list, tuple)) or len(raw) != 2:
            raise FetchError(
                f"Malformed response: {key}[{index}] is not a [timestamp, value] pair",
                details={"key": key, "index": index},
            )
        try:
            points.append((float(raw[0]), float(raw[1])))
        except (TypeError, ValueError) as e:
            raise FetchError(
                f"Malformed response: {key}[{index}] is not numeric ({raw!r})",
                details={"key": key, "index": index},
            ) from e

    return tuple(points)


def parse_market_chart(payload: Any) -> ChartSeries:
    """
    Parse a market_chart JSON body into a ChartSeries.

    Alignment is not checked here; the converter and splitter do that.

    Raises:
        FetchError: If the body is not an object or a series is malformed
    """
    if not isinstance(payload, dict):
        raise FetchError(f"Malformed response: expected object, got {type(payload).__name__}")

    prices, market_caps, total_volumes = (_parse_points(payload, key) for key in SERIES_KEYS)
    return ChartSeries(prices=prices, market_caps=market_caps, total_volumes=total_volumes)


class CoinGeckoClient:
    """
    Synchronous CoinGecko client implementing MarketDataProvider.

    Use as a context manager, or call close() when done.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: Optional[str] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API root, without trailing slash
            api_key: Optional demo API key (x-cg-demo-api-key)
            timeout_seconds: Per-request timeout
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        headers = {"accept": "application/json"}
        if api_key:
            headers["x-cg-demo-api-key"] = api_key

        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    def fetch_chart(self, coin_id: str, currency: str, days: str) -> ChartSeries:
        """
        Fetch chart series for a coin over a range.

        Args:
            coin_id: CoinGecko coin id (e.g. "chainlink")
            currency: Quote currency (e.g. "usd")
            days: Range, "max" or a number of days as string

        Returns:
            ChartSeries with prices, market caps and total volumes

        Raises:
            FetchError: On HTTP, timeout, transport or parse errors
        """
        path = f"/coins/{coin_id}/market_chart"
        params = {"vs_currency": currency, "days": days}

        logger.debug("Fetching market chart for %s/%s days=%s", coin_id, currency, days)

        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise FetchError(
                f"HTTP {status}: {e.response.text[:200]}",
                recoverable=status >= 500 or status == 429,
                details={"status_code": status},
            ) from e
        except httpx.TimeoutException as e:
            raise FetchError(
                f"Request timeout after {self.timeout_seconds}s: {e}",
                recoverable=True,
            ) from e
        except httpx.RequestError as e:
            raise FetchError(f"Request error: {e}", recoverable=True) from e
        except ValueError as e:
            raise FetchError(f"Response is not valid JSON: {e}") from e

        chart = parse_market_chart(payload)
        logger.debug("Retrieved %d points for %s", len(chart), coin_id)
        return chart

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self) -> str:
        return f"CoinGeckoClient(base_url={self.base_url}, timeout={self.timeout_seconds}s)"
