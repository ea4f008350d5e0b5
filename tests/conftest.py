"""
Shared pytest fixtures for the Stock Signals test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``make_series``: Factory building a ``PriceSeries`` from a list of closes.
  - ``app_config``: Default ``AppConfig`` pointed at a temporary database.
  - ``store``: A ``RecommendationStore`` on a temporary file with a pinned clock.
"""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Generator, Optional, Sequence

import pytest

from stock_signals.config import AppConfig, DatabaseConfig
from stock_signals.db.schema import apply_schema
from stock_signals.models.market import FundamentalRatios, PriceBar, PriceSeries
from stock_signals.recommendations.store import RecommendationStore

FIXED_NOW = datetime(2024, 11, 15, 8, 0, 0, tzinfo=timezone.utc)


# ── Database fixture ──────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(tmp_path) -> RecommendationStore:
    """File-backed store with a pinned clock (the store refuses ``:memory:``)."""
    return RecommendationStore(str(tmp_path / "store.db"), clock=lambda: FIXED_NOW)


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    """Default config writing to a per-test database."""
    return AppConfig(database=DatabaseConfig(db_path=str(tmp_path / "app.db")))


# ── Sample domain object factories ────────────────────────────────────────────

@pytest.fixture
def make_series() -> Callable[..., PriceSeries]:
    """Return a factory: ``make_series(closes, symbol="FPT", volumes=None)``.

    Bars are consecutive calendar days starting 2024-01-01; high/low are ±1%
    around the close.
    """

    def _make(
        closes: Sequence[float],
        symbol: str = "FPT",
        volumes: Optional[Sequence[float]] = None,
    ) -> PriceSeries:
        start = date(2024, 1, 1)
        vols = list(volumes) if volumes is not None else [100_000.0] * len(closes)
        bars = tuple(
            PriceBar(
                date=start + timedelta(days=i),
                open=close,
                high=close * 1.01,
                low=close * 0.99,
                close=close,
                volume=vols[i],
            )
            for i, close in enumerate(closes)
        )
        return PriceSeries(symbol=symbol, bars=bars)

    return _make


@pytest.fixture
def rising_closes() -> list[float]:
    """60 sessions of a steady uptrend (MA10 well above MA30)."""
    return [50_000.0 + 250.0 * i for i in range(60)]


@pytest.fixture
def healthy_ratios() -> FundamentalRatios:
    """Fundamentals that clear every screening criterion."""
    return FundamentalRatios(
        symbol="FPT",
        values={
            "PRICE_TO_EARNINGS": 14.0,
            "PRICE_TO_BOOK": 2.5,
            "ROAE_TR_AVG5Q": 0.22,
        },
        roe_history=(0.20, 0.22),
    )
