"""
Recommendation store — the only writer of the ``recommendations`` table.

Lifecycle
---------
``create`` inserts with status ``active``. ``refresh_price`` moves the
current price (on any record, terminal ones included, so reports keep
tracking them) without touching status. ``update_status`` refreshes the price
and then either applies an explicit status or derives one:

    current <= stop_loss  → stopped     (checked first)
    current >= target     → completed
    otherwise             → unchanged

When both thresholds are crossed at once, stop-loss wins.

``completed`` and ``stopped`` are terminal. A derived transition on a
terminal record is silently skipped; an explicit request to move one raises
``InvalidTransitionError``.

Concurrency
-----------
Every method opens its own SQLite connection, so the store is safe to share
across threads. Writes to a single id are serialized by a per-id lock;
distinct ids proceed in parallel. ``refresh_all`` fans out over a bounded
thread pool.

Storage failures (``sqlite3.Error``) surface as ``PersistenceError``.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from stock_signals.config import DatabaseConfig
from stock_signals.db.connection import get_connection
from stock_signals.db.repositories.recommendation_repo import RecommendationRepository
from stock_signals.db.schema import apply_schema
from stock_signals.errors import (
    InvalidTransitionError,
    PersistenceError,
    RecommendationNotFoundError,
    RecommendationValidationError,
    StockSignalsError,
)
from stock_signals.models.recommendation import (
    PerformanceMetrics,
    Recommendation,
    RecommendationDraft,
    VALID_STATUSES,
)
from stock_signals.models.signal import clamp_confidence
from stock_signals.recommendations.performance import compute_performance
from stock_signals.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: tuple[str, ...] = (
    "symbol",
    "recommended_price",
    "current_price",
    "confidence",
    "ai_signal",
)

PriceLookup = Callable[[str], float]


def derive_status(
    current_price: float,
    target_price: Optional[float],
    stop_loss: Optional[float],
) -> str:
    """Status implied by ``current_price``; stop-loss is checked before target."""
    if stop_loss is not None and current_price <= stop_loss:
        return "stopped"
    if target_price is not None and current_price >= target_price:
        return "completed"
    return "active"


def _gain(recommended_price: float, current_price: float) -> tuple[float, float]:
    gain = current_price - recommended_price
    return round(gain, 4), round(gain / recommended_price * 100.0, 4)


def _is_missing(name: str, value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if name in ("recommended_price", "current_price"):
        return value <= 0
    return False


@dataclass
class RefreshSummary:
    """Outcome of one ``refresh_all`` pass.

    Attributes:
        symbols_checked: Distinct active symbols looked up.
        updated:         Records whose price was refreshed.
        completed:       Records that moved to ``completed``.
        stopped:         Records that moved to ``stopped``.
        failed_symbols:  Symbols whose price lookup failed.
        errors:          One line per failure.
    """

    symbols_checked: int = 0
    updated: int = 0
    completed: int = 0
    stopped: int = 0
    failed_symbols: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class RecommendationStore:
    """SQLite-backed recommendation lifecycle.

    Args:
        db_path:         SQLite file path.
        wal_mode:        Enable WAL journaling.
        busy_timeout_ms: Lock wait before ``OperationalError``.
        clock:           UTC "now" provider (tests pin it).
    """

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if db_path == ":memory:":
            raise ValueError(
                "RecommendationStore needs a file database; each call opens its own connection."
            )
        self.db_path = db_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.clock = clock
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        with self._repo("apply_schema") as repo:
            apply_schema(repo.conn)

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "RecommendationStore":
        return cls(config.db_path, config.wal_mode, config.busy_timeout_ms)

    # ── Infrastructure ─────────────────────────────────────────────────────────

    @contextmanager
    def _repo(self, operation: str) -> Iterator[RecommendationRepository]:
        try:
            with get_connection(self.db_path, self.wal_mode, self.busy_timeout_ms) as conn:
                yield RecommendationRepository(conn)
        except sqlite3.Error as exc:
            logger.error("Store %s failed: %s", operation, exc)
            raise PersistenceError(operation, exc) from exc

    def _lock_for(self, recommendation_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(recommendation_id)
            if lock is None:
                lock = self._locks[recommendation_id] = threading.Lock()
            return lock

    # ── Reads ──────────────────────────────────────────────────────────────────

    def get(self, recommendation_id: int) -> Recommendation:
        """Fetch one record.

        Raises:
            RecommendationNotFoundError: If the id does not exist.
        """
        with self._repo("get") as repo:
            rec = repo.get(recommendation_id)
        if rec is None:
            raise RecommendationNotFoundError(recommendation_id)
        return rec

    def list(self, status: Optional[str] = None) -> list[Recommendation]:
        """All records newest first, optionally only those with ``status``."""
        if status is not None and status not in VALID_STATUSES:
            raise ValueError(f"Unknown status '{status}'. Must be one of {sorted(VALID_STATUSES)}.")
        with self._repo("list") as repo:
            return repo.list_by_status(status)

    def compute_performance(self) -> PerformanceMetrics:
        """Aggregate metrics over every stored record (read-only)."""
        return compute_performance(self.list())

    # ── Writes ─────────────────────────────────────────────────────────────────

    def create(
        self, draft: Union[RecommendationDraft, Mapping[str, Any]]
    ) -> Recommendation:
        """Insert a new ``active`` recommendation.

        Raises:
            RecommendationValidationError: Listing every missing required field.
            PersistenceError: If the insert fails.
        """
        if not isinstance(draft, RecommendationDraft):
            draft = RecommendationDraft.model_validate(dict(draft))

        missing = [name for name in REQUIRED_FIELDS if _is_missing(name, getattr(draft, name))]
        if missing:
            raise RecommendationValidationError(missing)

        fields = draft.model_dump()
        fields["symbol"] = draft.symbol.strip().upper()
        fields["confidence"] = clamp_confidence(draft.confidence)
        fields["gain_loss"], fields["gain_loss_pct"] = _gain(
            draft.recommended_price, draft.current_price
        )

        with self._repo("create") as repo:
            new_id = repo.insert(fields, self.clock())
            rec = repo.get(new_id)
        assert rec is not None
        logger.info(
            "Created recommendation %d: %s @ %.0f (target=%s stop=%s)",
            rec.id, rec.symbol, rec.recommended_price, rec.target_price, rec.stop_loss,
        )
        return rec

    def refresh_price(self, recommendation_id: int, current_price: float) -> Recommendation:
        """Record a new market price; never changes status.

        Raises:
            RecommendationNotFoundError: If the id does not exist.
            ValueError: If ``current_price`` is not positive.
        """
        if current_price <= 0:
            raise ValueError(f"current_price must be positive, got {current_price}.")
        with self._lock_for(recommendation_id):
            with self._repo("refresh_price") as repo:
                rec = repo.get(recommendation_id)
                if rec is None:
                    raise RecommendationNotFoundError(recommendation_id)
                self._write_price(repo, rec, current_price)
                updated = repo.get(recommendation_id)
        assert updated is not None
        return updated

    def update_status(
        self,
        recommendation_id: int,
        current_price: float,
        status: Optional[str] = None,
    ) -> Recommendation:
        """Refresh the price, then apply ``status`` or derive one.

        Raises:
            RecommendationNotFoundError: If the id does not exist.
            InvalidTransitionError: If ``status`` asks a terminal record to move.
            ValueError: For an unknown ``status`` or non-positive price.
            PersistenceError: If the write fails.
        """
        if status is not None and status not in VALID_STATUSES:
            raise ValueError(f"Unknown status '{status}'. Must be one of {sorted(VALID_STATUSES)}.")
        if current_price <= 0:
            raise ValueError(f"current_price must be positive, got {current_price}.")

        with self._lock_for(recommendation_id):
            with self._repo("update_status") as repo:
                rec = repo.get(recommendation_id)
                if rec is None:
                    raise RecommendationNotFoundError(recommendation_id)
                if rec.is_terminal and status is not None and status != rec.status:
                    raise InvalidTransitionError(recommendation_id, rec.status, status)

                now = self._write_price(repo, rec, current_price)

                if not rec.is_terminal:
                    new_status = (
                        status
                        if status is not None
                        else derive_status(current_price, rec.target_price, rec.stop_loss)
                    )
                    if new_status != "active":
                        repo.close(recommendation_id, new_status, now)
                        logger.info(
                            "Recommendation %d (%s) → %s at %.0f",
                            recommendation_id, rec.symbol, new_status, current_price,
                        )
                updated = repo.get(recommendation_id)
        assert updated is not None
        return updated

    def _write_price(
        self, repo: RecommendationRepository, rec: Recommendation, current_price: float
    ) -> datetime:
        now = self.clock()
        gain, gain_pct = _gain(rec.recommended_price, current_price)
        repo.update_price(rec.id, current_price, gain, gain_pct, now)
        return now

    # ── Batch refresh ──────────────────────────────────────────────────────────

    def refresh_all(self, price_lookup: PriceLookup, max_workers: int = 4) -> RefreshSummary:
        """Refresh every active record against the latest market price.

        Each distinct symbol is looked up once. A failed lookup skips that
        symbol's records and is reported in the summary; it does not stop the
        pass. Per-record write failures are reported the same way.

        Args:
            price_lookup: Symbol → latest price; may raise.
            max_workers:  Thread pool size for lookups and updates.
        """
        summary = RefreshSummary()
        active = self.list("active")
        symbols = sorted({r.symbol for r in active})
        summary.symbols_checked = len(symbols)
        if not symbols:
            return summary

        prices: dict[str, float] = {}
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {sym: pool.submit(price_lookup, sym) for sym in symbols}
            for sym, future in futures.items():
                try:
                    prices[sym] = float(future.result())
                except Exception as exc:
                    logger.warning("Price lookup failed for %s: %s", sym, exc)
                    summary.failed_symbols.append(sym)
                    summary.errors.append(f"{sym}: {exc}")

        def _apply(rec: Recommendation) -> Recommendation:
            return self.update_status(rec.id, prices[rec.symbol])

        targets = [r for r in active if r.symbol in prices]
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures_by_id = {rec.id: pool.submit(_apply, rec) for rec in targets}
            for rec_id, future in futures_by_id.items():
                try:
                    updated = future.result()
                except (StockSignalsError, ValueError) as exc:
                    logger.error("Refresh failed for recommendation %d: %s", rec_id, exc)
                    summary.errors.append(f"#{rec_id}: {exc}")
                    continue
                summary.updated += 1
                if updated.status == "completed":
                    summary.completed += 1
                elif updated.status == "stopped":
                    summary.stopped += 1

        logger.info(
            "Refreshed %d recommendation(s) across %d symbol(s): %d completed, %d stopped, %d failed lookups",
            summary.updated, summary.symbols_checked, summary.completed,
            summary.stopped, len(summary.failed_symbols),
        )
        return summary
