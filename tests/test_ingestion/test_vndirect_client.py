"""
Tests for stock_signals/ingestion/vndirect_client.py.

All HTTP goes through ``httpx.MockTransport``; no network access.

What we test
------------
fetch_price_series():
  - Rows arrive newest-first and come back ascending, in VND.
  - Adjusted close is preferred; duplicate dates keep the first row.
  - Rows dated in the future are dropped.
  - Empty data, HTTP errors, timeouts and non-object bodies → DataUnavailableError.
fetch_ratios(): latest values plus ROE history, oldest first.
fetch_analyst_targets(): calls normalized, unknown calls skipped.
Fixture mode: deterministic, no HTTP.
"""

from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from stock_signals.config import ProviderConfig
from stock_signals.errors import DataUnavailableError
from stock_signals.ingestion.vndirect_client import VNDirectClient
from stock_signals.utils.time_utils import market_today


def _client(handler) -> VNDirectClient:
    return VNDirectClient(
        ProviderConfig(), http=httpx.Client(transport=httpx.MockTransport(handler))
    )


def _price_handler(rows):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/stock_prices")
        assert request.url.params["q"] == "code:FPT"
        assert request.url.params["sort"] == "date:desc"
        return httpx.Response(200, json={"data": rows})
    return handler


class TestFetchPriceSeries:
    def test_parses_and_orders(self):
        rows = [
            {"date": "2024-03-05", "adClose": 64.5, "close": 65.0, "adOpen": 64.0,
             "adHigh": 65.2, "adLow": 63.8, "nmVolume": 1_200_000},
            {"date": "2024-03-05", "adClose": 60.0, "nmVolume": 1},
            {"date": "2024-03-04", "close": 63.0, "open": 62.5, "high": 63.5,
             "low": 62.0, "nmVolume": 900_000},
        ]
        series = _client(_price_handler(rows)).fetch_price_series("fpt", size=2)

        assert series.symbol == "FPT"
        assert [b.date.isoformat() for b in series.bars] == ["2024-03-04", "2024-03-05"]
        assert series.bars[0].close == pytest.approx(63_000.0)
        assert series.bars[1].close == pytest.approx(64_500.0)
        assert series.bars[1].high == pytest.approx(65_200.0)
        assert series.bars[1].volume == 1_200_000

    def test_future_rows_dropped(self):
        future = (market_today() + timedelta(days=30)).isoformat()
        rows = [
            {"date": future, "close": 99.0},
            {"date": "2024-03-04", "close": 63.0},
        ]
        series = _client(_price_handler(rows)).fetch_price_series("FPT", size=5)
        assert len(series) == 1

    def test_empty_data(self):
        with pytest.raises(DataUnavailableError) as exc_info:
            _client(_price_handler([])).fetch_price_series("FPT", size=5)
        assert exc_info.value.symbol == "FPT"

    def test_http_error(self):
        client = _client(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(DataUnavailableError) as exc_info:
            client.fetch_price_series("FPT", size=5)
        assert "HTTP 503" in exc_info.value.reason

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(DataUnavailableError) as exc_info:
            _client(handler).fetch_price_series("FPT", size=5)
        assert "timeout" in exc_info.value.reason

    def test_non_object_body(self):
        client = _client(lambda request: httpx.Response(200, json=[1, 2, 3]))
        with pytest.raises(DataUnavailableError):
            client.fetch_price_series("FPT", size=5)

    def test_latest_price(self):
        rows = [{"date": "2024-03-05", "close": 64.0}]
        assert _client(_price_handler(rows)).fetch_latest_price("FPT") == pytest.approx(64_000.0)


class TestFetchRatios:
    def test_values_and_roe_history(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/ratios/latest"):
                assert request.url.params["where"] == "code:FPT"
                return httpx.Response(200, json={"data": [
                    {"ratioCode": "PRICE_TO_EARNINGS", "value": 18.5},
                    {"ratioCode": "ROAE_TR_AVG5Q", "value": 0.27},
                    {"ratioCode": "PRICE_TO_BOOK", "value": None},
                ]})
            return httpx.Response(200, json={"data": [{"value": 0.27}, {"value": 0.25}]})

        ratios = _client(handler).fetch_ratios("FPT")
        assert ratios.pe == 18.5
        assert ratios.pb is None
        assert ratios.roe_history == (0.25, 0.27)
        assert ratios.roe_improving


class TestFetchAnalystTargets:
    def test_normalizes_calls(self):
        rows = [
            {"firm": "SSI", "type": "BUY", "targetPrice": 120.0, "reportDate": "2024-10-01"},
            {"firm": "VCSC", "type": "OUTPERFORM", "targetPrice": 125_000},
            {"firm": "X", "type": "SPECULATIVE"},
        ]
        client = _client(lambda request: httpx.Response(200, json={"data": rows}))
        targets = client.fetch_analyst_targets("FPT")

        assert [t.call for t in targets] == ["BUY", "BUY"]
        assert targets[0].target_price == pytest.approx(120_000.0)
        assert targets[1].target_price == pytest.approx(125_000.0)
        assert targets[0].report_date.isoformat() == "2024-10-01"


class TestFixtureMode:
    def _handler(self, request):
        raise AssertionError("fixture mode must not touch the network")

    def test_series_is_deterministic(self):
        client = VNDirectClient(
            ProviderConfig(use_fixture=True),
            http=httpx.Client(transport=httpx.MockTransport(self._handler)),
        )
        first = client.fetch_price_series("FPT", size=60)
        second = client.fetch_price_series("FPT", size=60)
        assert len(first) == 60
        assert first == second
        assert first.bars[-1].date <= market_today()

    def test_ratios_and_targets(self):
        client = VNDirectClient(ProviderConfig(use_fixture=True))
        ratios = client.fetch_ratios("VNM")
        assert ratios.pe == 15.2
        assert ratios.roe_improving
        assert client.fetch_analyst_targets("VNM") == []
