"""
Market data provider contract.

The pipeline depends only on ``PriceSeriesProvider``. Concrete clients raise
``DataUnavailableError`` for any fetch failure or empty result so callers
handle one exception type regardless of transport.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from stock_signals.models.market import AnalystTarget, FundamentalRatios, PriceSeries


class PriceSeriesProvider(ABC):
    """Supplies ordered OHLCV bars and fundamental data for a symbol."""

    @abstractmethod
    def fetch_price_series(self, symbol: str, size: int) -> PriceSeries:
        """Return up to ``size`` most recent bars, ascending by date.

        Raises:
            DataUnavailableError: On transport failure or when no bars exist.
        """

    @abstractmethod
    def fetch_ratios(self, symbol: str) -> FundamentalRatios:
        """Return the latest fundamental ratios (may be empty).

        Raises:
            DataUnavailableError: On transport failure.
        """

    @abstractmethod
    def fetch_analyst_targets(self, symbol: str) -> list[AnalystTarget]:
        """Return recent broker recommendations (may be empty).

        Raises:
            DataUnavailableError: On transport failure.
        """

    def fetch_latest_price(self, symbol: str) -> float:
        """Return the most recent close.

        Raises:
            DataUnavailableError: If no bar is available.
        """
        latest = self.fetch_price_series(symbol, size=1).latest
        assert latest is not None
        return latest.close
