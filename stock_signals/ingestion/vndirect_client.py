"""
VNDirect finfo client — daily prices, fundamental ratios, broker calls.

API:   https://api-finfo.vndirect.com.vn/v4  (public, no key)

Endpoints used:
  GET /stock_prices?sort=date:desc&q=code:{CODE}&size={N}
  GET /ratios/latest?filter=ratioCode:{CODES}&where=code:{CODE}&order=reportDate&fields=ratioCode,value
  GET /ratios?q=code:{CODE}~ratioCode:ROAE_TR_AVG5Q&sort=reportDate:desc&size=2
  GET /recommendations?q=code:{CODE}~reportDate:gte:{YYYY-MM-DD}&size=100&sort=reportDate:DESC

The API quotes prices in thousands of VND. This client multiplies by 1000 so
every ``PriceBar`` and ``AnalystTarget`` is in VND.

Fixture mode (``use_fixture = true`` in ``[provider]``) returns deterministic
synthetic data without any network access, for local runs and tests.
"""

from __future__ import annotations

import logging
import math
from datetime import date, timedelta
from typing import Any, ClassVar, Optional

import httpx

from stock_signals.config import ProviderConfig
from stock_signals.errors import DataUnavailableError
from stock_signals.ingestion.provider import PriceSeriesProvider
from stock_signals.models.market import (
    AnalystTarget,
    FundamentalRatios,
    PriceBar,
    PriceSeries,
)
from stock_signals.utils.time_utils import is_valid_trading_date, market_today, previous_trading_days

logger = logging.getLogger(__name__)

PRICE_UNIT = 1000.0


class VNDirectClient(PriceSeriesProvider):
    """Typed client for the VNDirect finfo REST API.

    Usage (live)::

        client = VNDirectClient(ProviderConfig())
        series = client.fetch_price_series("FPT", size=270)

    Usage (fixture, no network)::

        client = VNDirectClient(ProviderConfig(use_fixture=True))

    Attributes:
        config: Provider section of ``AppConfig``.
        http:   Optional ``httpx.Client``; one is created per call when absent.
    """

    RATIO_CODES: ClassVar[list[str]] = [
        "MARKETCAP",
        "PRICE_TO_EARNINGS",
        "PRICE_TO_BOOK",
        "DIVIDEND_YIELD",
        "ROAE_TR_AVG5Q",
        "ROAA_TR_AVG5Q",
        "EPS_TR",
    ]

    # Fixture fundamentals per symbol; unknown symbols get the first entry.
    FIXTURE_RATIOS: ClassVar[dict[str, dict[str, float]]] = {
        "FPT": {
            "PRICE_TO_EARNINGS": 18.4,
            "PRICE_TO_BOOK": 2.6,
            "ROAE_TR_AVG5Q": 0.27,
            "ROAA_TR_AVG5Q": 0.12,
            "DIVIDEND_YIELD": 0.02,
            "MARKETCAP": 1.9e14,
            "EPS_TR": 6100.0,
        },
        "VNM": {
            "PRICE_TO_EARNINGS": 15.2,
            "PRICE_TO_BOOK": 3.9,
            "ROAE_TR_AVG5Q": 0.25,
            "ROAA_TR_AVG5Q": 0.16,
            "DIVIDEND_YIELD": 0.06,
            "MARKETCAP": 1.4e14,
            "EPS_TR": 4300.0,
        },
    }

    def __init__(
        self,
        config: ProviderConfig,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self.config = config
        self.http = http

    # ── PriceSeriesProvider ────────────────────────────────────────────────────

    def fetch_price_series(self, symbol: str, size: int) -> PriceSeries:
        symbol = symbol.strip().upper()
        if self.config.use_fixture:
            return self.get_fixture_series(symbol, size)

        payload = self._get_json(
            symbol,
            "/stock_prices",
            {"sort": "date:desc", "q": f"code:{symbol}", "size": size},
        )
        bars = _parse_price_rows(payload.get("data") or [])
        if not bars:
            raise DataUnavailableError(symbol, "provider returned no price bars")
        logger.debug("%s: fetched %d bars", symbol, len(bars))
        return PriceSeries(symbol=symbol, bars=tuple(bars))

    def fetch_ratios(self, symbol: str) -> FundamentalRatios:
        symbol = symbol.strip().upper()
        if self.config.use_fixture:
            return self.get_fixture_ratios(symbol)

        payload = self._get_json(
            symbol,
            "/ratios/latest",
            {
                "filter": f"ratioCode:{','.join(self.RATIO_CODES)}",
                "where": f"code:{symbol}",
                "order": "reportDate",
                "fields": "ratioCode,value",
            },
        )
        values = _parse_ratio_rows(payload.get("data") or [])
        roe_history = self._fetch_roe_history(symbol)
        return FundamentalRatios(symbol=symbol, values=values, roe_history=roe_history)

    def fetch_analyst_targets(self, symbol: str) -> list[AnalystTarget]:
        symbol = symbol.strip().upper()
        if self.config.use_fixture:
            return []

        since = market_today() - timedelta(days=self.config.analyst_lookback_days)
        payload = self._get_json(
            symbol,
            "/recommendations",
            {
                "q": f"code:{symbol}~reportDate:gte:{since.isoformat()}",
                "size": 100,
                "sort": "reportDate:DESC",
            },
        )
        return _parse_recommendation_rows(payload.get("data") or [])

    # ── HTTP ───────────────────────────────────────────────────────────────────

    def _fetch_roe_history(self, symbol: str) -> tuple[float, ...]:
        """Two most recent trailing ROE readings, oldest first."""
        payload = self._get_json(
            symbol,
            "/ratios",
            {
                "q": f"code:{symbol}~ratioCode:ROAE_TR_AVG5Q",
                "sort": "reportDate:desc",
                "size": 2,
            },
        )
        values = [
            float(row["value"])
            for row in payload.get("data") or []
            if _as_float(row.get("value")) is not None
        ]
        return tuple(reversed(values))

    def _get_json(self, symbol: str, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """GET ``base_url + path`` and return the decoded body.

        Raises:
            DataUnavailableError: On timeout, transport error, non-2xx status
                or a body that is not a JSON object.
        """
        url = f"{self.config.base_url}{path}"
        try:
            if self.http is not None:
                resp = self.http.get(url, params=params, timeout=self.config.timeout_seconds)
            else:
                resp = httpx.get(
                    url,
                    params=params,
                    headers={"Accept": "application/json"},
                    timeout=self.config.timeout_seconds,
                )
            resp.raise_for_status()
            body = resp.json()
        except httpx.TimeoutException as exc:
            raise DataUnavailableError(symbol, f"timeout calling {path}") from exc
        except httpx.HTTPStatusError as exc:
            raise DataUnavailableError(
                symbol, f"HTTP {exc.response.status_code} from {path}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise DataUnavailableError(symbol, f"{type(exc).__name__} calling {path}") from exc

        if not isinstance(body, dict):
            raise DataUnavailableError(symbol, f"unexpected payload from {path}")
        return body

    # ── Fixture / stub mode ────────────────────────────────────────────────────

    def get_fixture_series(self, symbol: str, size: int) -> PriceSeries:
        """Deterministic synthetic history: a gentle uptrend with a weekly wave.

        The seed is derived from the symbol so different tickers get
        different (but repeatable) paths.
        """
        seed = sum(ord(c) for c in symbol)
        base = 20_000.0 + (seed % 50) * 1_000.0
        days = previous_trading_days(market_today(), max(size, 1))
        bars: list[PriceBar] = []
        for i, day in enumerate(days):
            close = base * (1 + 0.002 * i) + base * 0.02 * math.sin(i / 5.0)
            close = round(close, -1)
            bars.append(
                PriceBar(
                    date=day,
                    open=close * 0.995,
                    high=close * 1.01,
                    low=close * 0.99,
                    close=close,
                    volume=1_000_000 + (seed * 37 + i * 1_013) % 500_000,
                )
            )
        return PriceSeries(symbol=symbol, bars=tuple(bars))

    def get_fixture_ratios(self, symbol: str) -> FundamentalRatios:
        values = self.FIXTURE_RATIOS.get(symbol) or next(iter(self.FIXTURE_RATIOS.values()))
        roe = values["ROAE_TR_AVG5Q"]
        return FundamentalRatios(
            symbol=symbol, values=dict(values), roe_history=(roe - 0.01, roe)
        )


# ── Parsers ────────────────────────────────────────────────────────────────────

def _as_float(value: Any) -> Optional[float]:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(result) else result


def _parse_price_rows(rows: list[dict[str, Any]]) -> list[PriceBar]:
    """Parse ``stock_prices`` rows into ascending, de-duplicated VND bars.

    Adjusted close (``adClose``) is preferred over ``close``; matched volume
    (``nmVolume``) is used for volume. Rows dated after today (market time)
    or with unparseable prices are skipped.
    """
    today = market_today()
    by_date: dict[date, PriceBar] = {}
    for row in rows:
        try:
            bar_date = date.fromisoformat(str(row.get("date", ""))[:10])
        except ValueError:
            continue
        if not is_valid_trading_date(bar_date, today):
            continue
        close = _as_float(row.get("adClose")) or _as_float(row.get("close"))
        if close is None:
            continue
        open_ = _as_float(row.get("adOpen")) or _as_float(row.get("open")) or close
        high = _as_float(row.get("adHigh")) or _as_float(row.get("high")) or close
        low = _as_float(row.get("adLow")) or _as_float(row.get("low")) or close
        high = max(high, open_, close)
        low = min(low, open_, close)
        volume = _as_float(row.get("nmVolume")) or 0.0
        # First occurrence wins: rows arrive newest-first and duplicates are
        # revisions of the same session.
        by_date.setdefault(
            bar_date,
            PriceBar(
                date=bar_date,
                open=open_ * PRICE_UNIT,
                high=high * PRICE_UNIT,
                low=low * PRICE_UNIT,
                close=close * PRICE_UNIT,
                volume=max(volume, 0.0),
            ),
        )
    return [by_date[d] for d in sorted(by_date)]


def _parse_ratio_rows(rows: list[dict[str, Any]]) -> dict[str, float]:
    values: dict[str, float] = {}
    for row in rows:
        code = str(row.get("ratioCode") or "")
        value = _as_float(row.get("value"))
        if code and value is not None:
            values[code] = value
    return values


def _parse_recommendation_rows(rows: list[dict[str, Any]]) -> list[AnalystTarget]:
    targets: list[AnalystTarget] = []
    for row in rows:
        try:
            report_date = date.fromisoformat(str(row.get("reportDate", ""))[:10])
        except ValueError:
            report_date = None
        target = _as_float(row.get("targetPrice"))
        try:
            targets.append(
                AnalystTarget(
                    firm=str(row.get("firm") or ""),
                    call=row.get("type") or "",
                    target_price=target * PRICE_UNIT if target and target < 1000 else target,
                    report_date=report_date,
                )
            )
        except ValueError:
            logger.debug("Skipping unrecognised analyst call: %r", row.get("type"))
    return targets
