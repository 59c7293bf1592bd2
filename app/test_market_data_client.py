"""
Unit Tests for the CoinGecko client
Run with: pytest test_market_data_client.py -v

No network: requests are served by httpx.MockTransport.
"""

import httpx
import pytest

from market_data_client import CoinGeckoClient, parse_market_chart
from pipeline_errors import FetchError

CHART_PAYLOAD = {
    "prices": [[1704067200000, 15.1], [1704070800000, 15.3]],
    "market_caps": [[1704067200000, 8.5e9], [1704070800000, 8.6e9]],
    "total_volumes": [[1704067200000, 3.2e8], [1704070800000, 3.1e8]],
}


def make_client(handler, **kwargs) -> CoinGeckoClient:
    return CoinGeckoClient(
        base_url="https://api.example.test/api/v3",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestFetchChart:

    def test_request_shape_and_parsing(self):
        """Path, query and parsed series."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=CHART_PAYLOAD)

        with make_client(handler) as client:
            chart = client.fetch_chart("chainlink", "usd", "max")

        assert seen["path"] == "/api/v3/coins/chainlink/market_chart"
        assert seen["params"] == {"vs_currency": "usd", "days": "max"}
        assert len(chart) == 2
        assert chart.is_aligned()
        assert chart.prices[1] == (1704070800000.0, 15.3)
        assert chart.market_caps[0] == (1704067200000.0, 8.5e9)

    def test_api_key_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers.get("x-cg-demo-api-key")
            return httpx.Response(200, json=CHART_PAYLOAD)

        with make_client(handler, api_key="demo-key") as client:
            client.fetch_chart("chainlink", "usd", "1")

        assert seen["key"] == "demo-key"

    def test_server_error_is_recoverable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="upstream unavailable")

        with make_client(handler) as client:
            with pytest.raises(FetchError, match="HTTP 503") as exc_info:
                client.fetch_chart("chainlink", "usd", "1")

        assert exc_info.value.recoverable
        assert exc_info.value.details["status_code"] == 503

    def test_not_found_is_not_recoverable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": "coin not found"})

        with make_client(handler) as client:
            with pytest.raises(FetchError) as exc_info:
                client.fetch_chart("no-such-coin", "usd", "1")

        assert not exc_info.value.recoverable

    def test_timeout_is_recoverable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with make_client(handler, timeout_seconds=0.5) as client:
            with pytest.raises(FetchError, match="timeout") as exc_info:
                client.fetch_chart("chainlink", "usd", "1")

        assert exc_info.value.recoverable

    def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with make_client(handler) as client:
            with pytest.raises(FetchError, match="Request error"):
                client.fetch_chart("chainlink", "usd", "1")

    def test_invalid_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>not json</html>")

        with make_client(handler) as client:
            with pytest.raises(FetchError, match="not valid JSON"):
                client.fetch_chart("chainlink", "usd", "1")


class TestParseMarketChart:

    def test_missing_series(self):
        payload = {"prices": [], "market_caps": []}

        with pytest.raises(FetchError, match="total_volumes"):
            parse_market_chart(payload)

    def test_not_an_object(self):
        with pytest.raises(FetchError, match="expected object"):
            parse_market_chart([1, 2, 3])

    def test_malformed_point(self):
        payload = dict(CHART_PAYLOAD, prices=[[1704067200000]])

        with pytest.raises(FetchError, match=r"prices\[0\]"):
            parse_market_chart(payload)

    def test_null_value(self):
        payload = dict(CHART_PAYLOAD, market_caps=[[1704067200000, None], [1704070800000, 1.0]])

        with pytest.raises(FetchError, match="not numeric"):
            parse_market_chart(payload)

    def test_misaligned_series_parse_without_error(self):
        """Alignment is checked downstream, parsing keeps what it got."""
        payload = dict(CHART_PAYLOAD, total_volumes=[[1704067200000, 1.0]])

        chart = parse_market_chart(payload)
        assert not chart.is_aligned()
        assert chart.lengths() == (2, 2, 1)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
