"""
Batch analysis orchestration.

The ``BatchOrchestrator`` drives one symbol universe through the pipeline:

  Step 1 — Fetch:       Price bars (required), ratios and analyst calls
                        (optional; failures degrade to "not available").
  Step 2 — Indicators:  ``build_snapshot`` over the bars.
  Step 3 — Screen:      Golden cross + fundamental thresholds. A rejected
                        symbol costs no backend call and is not an error.
  Step 4 — Synthesize:  Prompt, backend call, validation, horizon fusion.
  Step 5 — Persist:     A BUY with enough confidence and a target price
                        becomes an ``active`` recommendation.

Failure isolation
-----------------
Every symbol yields exactly one ``SymbolOutcome``:

  Analyzed   synthesis completed (persisted or not)
  Screened   rejected by the pre-filter
  Skipped    data_unavailable | backend_unavailable | persistence_failure |
             timeout | unexpected_error | cancelled

Outcomes go into a lock-guarded, append-only collector and are partitioned
once the batch ends. ``run()`` never raises for a single bad symbol.

Concurrency
-----------
Symbols run on a bounded ``ThreadPoolExecutor`` (``orchestrator.max_workers``).
A symbol still running after ``orchestrator.symbol_timeout_seconds`` is
recorded as ``timeout``; its thread is left to finish but its late result is
discarded and it will not persist. A symbol that has claimed its store write
is never timed out, so the stored row and the outcome always agree. Setting ``cancel_event`` stops queued
symbols from starting and returns what has completed so far. Nothing is
retried here; retry policy belongs to the caller.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence, Union
from uuid import uuid4

from stock_signals.config import AppConfig
from stock_signals.errors import DataUnavailableError, PersistenceError
from stock_signals.indicators.snapshot import build_snapshot
from stock_signals.ingestion.provider import PriceSeriesProvider
from stock_signals.models.market import AnalystTarget, FundamentalRatios
from stock_signals.models.recommendation import RecommendationDraft
from stock_signals.models.signal import DeepAnalysis, Signal
from stock_signals.pipeline.screening import ScreenResult, screen_symbol
from stock_signals.recommendations.store import RecommendationStore
from stock_signals.synthesis.synthesizer import BackendUnavailable, SignalSynthesizer
from stock_signals.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

SKIP_REASONS = frozenset({
    "data_unavailable",
    "backend_unavailable",
    "persistence_failure",
    "timeout",
    "unexpected_error",
    "cancelled",
})


# ── Result types ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Analyzed:
    """A symbol that went through synthesis.

    Attributes:
        symbol:            Ticker.
        signal:            Fused overall signal.
        analysis:          Two-horizon detail.
        method:            How the reply was recovered (parsed/repaired/fallback).
        screen:            Pre-filter result the symbol passed.
        recommendation_id: Id of the stored recommendation, if one was created.
    """

    symbol:            str
    signal:            Signal
    analysis:          DeepAnalysis
    method:            str
    screen:            ScreenResult
    recommendation_id: Optional[int] = None


@dataclass(frozen=True)
class Screened:
    """A symbol rejected by the pre-filter."""

    symbol: str
    reason: str
    score:  int = 0


@dataclass(frozen=True)
class Skipped:
    """A symbol that produced no analysis."""

    symbol:  str
    reason:  str
    message: str = ""


SymbolOutcome = Union[Analyzed, Screened, Skipped]


@dataclass
class BatchResult:
    """Complete result of one batch run.

    Attributes:
        run_id:      DB run_id of the run_metadata record (None if not persisted).
        run_slug:    UUID4 for this run.
        started_at:  UTC datetime when the run started.
        finished_at: UTC datetime when the run finished.
        outcomes:    One outcome per distinct requested symbol, in completion order.
        cancelled:   True if ``cancel_event`` was set before the batch finished.
        status:      "success", "partial", "failed" or "cancelled".
    """

    run_id:      Optional[int]       = None
    run_slug:    str                 = ""
    started_at:  Optional[datetime]  = None
    finished_at: Optional[datetime]  = None
    outcomes:    list[SymbolOutcome] = field(default_factory=list)
    cancelled:   bool                = False
    status:      str                 = "started"

    @property
    def successes(self) -> list[Analyzed]:
        return [o for o in self.outcomes if isinstance(o, Analyzed)]

    @property
    def screened(self) -> list[Screened]:
        return [o for o in self.outcomes if isinstance(o, Screened)]

    @property
    def failures(self) -> list[Skipped]:
        return [o for o in self.outcomes if isinstance(o, Skipped)]

    @property
    def skipped_count(self) -> int:
        return len(self.failures)

    @property
    def persisted(self) -> list[Analyzed]:
        return [o for o in self.successes if o.recommendation_id is not None]

    def skip_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for outcome in self.failures:
            counts[outcome.reason] = counts.get(outcome.reason, 0) + 1
        return counts


class _OutcomeCollector:
    """Append-only, thread-safe outcome list; first outcome per symbol wins."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outcomes: list[SymbolOutcome] = []
        self._symbols: set[str] = set()
        self._claimed: set[str] = set()

    def add(self, outcome: SymbolOutcome) -> bool:
        with self._lock:
            if outcome.symbol in self._symbols:
                return False
            self._symbols.add(outcome.symbol)
            self._outcomes.append(outcome)
            return True

    def claim(self, symbol: str) -> bool:
        """Reserve *symbol* for a write; False once it already has an outcome.

        A claimed symbol is no longer eligible for a timeout outcome, so a
        stored recommendation always ends up with a matching ``Analyzed``.
        """
        with self._lock:
            if symbol in self._symbols:
                return False
            self._claimed.add(symbol)
            return True

    def is_claimed(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._claimed

    def snapshot(self) -> list[SymbolOutcome]:
        with self._lock:
            return list(self._outcomes)


# ── Orchestrator ──────────────────────────────────────────────────────────────

class BatchOrchestrator:
    """Runs the analysis pipeline over a set of symbols.

    Args:
        config:        AppConfig for this run.
        provider:      Market data source.
        synthesizer:   Signal synthesizer (wraps the generative backend).
        store:         Recommendation store; built from config when omitted.
        db_path:       Override DB path (defaults to config.database.db_path).
        poll_interval: Seconds between cancellation/timeout checks.
    """

    def __init__(
        self,
        config: AppConfig,
        provider: PriceSeriesProvider,
        synthesizer: SignalSynthesizer,
        store: Optional[RecommendationStore] = None,
        db_path: Optional[str] = None,
        poll_interval: float = 0.05,
    ) -> None:
        self.config        = config
        self.provider      = provider
        self.synthesizer   = synthesizer
        self.db_path       = db_path or config.database.db_path
        self.store         = store or RecommendationStore(
            self.db_path,
            wal_mode=config.database.wal_mode,
            busy_timeout_ms=config.database.busy_timeout_ms,
        )
        self.poll_interval = poll_interval

    def run(
        self,
        symbols: Sequence[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchResult:
        """Analyze every symbol and return the partitioned outcomes.

        Args:
            symbols:      Tickers to analyze; duplicates are collapsed.
            cancel_event: When set, queued symbols are not started and the
                          result holds whatever finished so far.
        """
        universe = list(dict.fromkeys(s.strip().upper() for s in symbols if s and s.strip()))
        result = BatchResult(run_slug=str(uuid4()), started_at=utcnow())
        logger.info(
            "BatchOrchestrator | run_slug=%s | symbols=%d | workers=%d",
            result.run_slug, len(universe), self.config.orchestrator.max_workers,
        )
        result.run_id = self._persist_run_start(result.run_slug, universe)

        collector = _OutcomeCollector()
        if universe:
            result.cancelled = self._run_pool(universe, collector, cancel_event)
        result.outcomes = collector.snapshot()
        result.finished_at = utcnow()

        if result.cancelled:
            result.status = "cancelled"
        elif not result.failures:
            result.status = "success"
        elif result.successes or result.screened:
            result.status = "partial"
        else:
            result.status = "failed"

        self._persist_run_finish(result)
        logger.info(
            "BatchOrchestrator finished | status=%s | analyzed=%d | screened=%d | "
            "skipped=%d | persisted=%d",
            result.status, len(result.successes), len(result.screened),
            result.skipped_count, len(result.persisted),
        )
        return result

    # ── Scheduling ────────────────────────────────────────────────────────────

    def _run_pool(
        self,
        universe: list[str],
        collector: _OutcomeCollector,
        cancel_event: Optional[threading.Event],
    ) -> bool:
        """Submit every symbol and wait; returns True if the batch was cancelled."""
        timeout = self.config.orchestrator.symbol_timeout_seconds
        started: dict[str, float] = {}
        started_lock = threading.Lock()

        def _worker(symbol: str) -> None:
            if cancel_event is not None and cancel_event.is_set():
                collector.add(Skipped(symbol, "cancelled", "batch cancelled before start"))
                return
            with started_lock:
                started[symbol] = time.monotonic()
            collector.add(self._safe_analyze(symbol, collector))

        executor = ThreadPoolExecutor(
            max_workers=self.config.orchestrator.max_workers,
            thread_name_prefix="analyze",
        )
        cancelled = False
        try:
            pending: dict[Future, str] = {
                executor.submit(_worker, symbol): symbol for symbol in universe
            }
            while pending:
                done, _ = wait(pending, timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                for future in done:
                    pending.pop(future)

                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    writing = [f for f, s in pending.items() if collector.is_claimed(s)]
                    if writing:
                        wait(writing, timeout=timeout)
                    for future, symbol in pending.items():
                        future.cancel()
                        collector.add(Skipped(symbol, "cancelled", "batch cancelled"))
                    logger.warning("Batch cancelled with %d symbol(s) unfinished.", len(pending))
                    break

                now = time.monotonic()
                with started_lock:
                    expired = [
                        (future, symbol) for future, symbol in pending.items()
                        if symbol in started and now - started[symbol] > timeout
                        and not collector.is_claimed(symbol)
                    ]
                for future, symbol in expired:
                    pending.pop(future)
                    if collector.add(
                        Skipped(symbol, "timeout", f"no result after {timeout:g}s")
                    ):
                        logger.warning("%s: timed out after %gs", symbol, timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return cancelled

    # ── Per-symbol pipeline ───────────────────────────────────────────────────

    def _safe_analyze(
        self, symbol: str, collector: Optional[_OutcomeCollector] = None
    ) -> SymbolOutcome:
        try:
            return self.analyze_symbol(symbol, collector=collector)
        except Exception as exc:
            logger.exception("%s: unexpected failure", symbol)
            return Skipped(symbol, "unexpected_error", f"{type(exc).__name__}: {exc}")

    def analyze_symbol(
        self,
        symbol: str,
        persist: bool = True,
        collector: Optional[_OutcomeCollector] = None,
    ) -> SymbolOutcome:
        """Run the full pipeline for one symbol.

        Args:
            symbol:    Ticker.
            persist:   Store a qualifying BUY as a recommendation.
            collector: Batch collector; the symbol is claimed before the store
                       write, and one it already holds (timed out) is not
                       persisted.
        """
        symbol = symbol.strip().upper()
        try:
            series = self.provider.fetch_price_series(
                symbol, self.config.provider.price_history_size
            )
        except DataUnavailableError as exc:
            logger.warning("%s: price data unavailable (%s)", symbol, exc.reason)
            return Skipped(symbol, "data_unavailable", exc.reason)

        ratios  = self._fetch_ratios(symbol)
        targets = self._fetch_analyst_targets(symbol)

        snapshot = build_snapshot(series, self.config.indicators)
        screen = screen_symbol(
            series, ratios, self.config.screening, self.config.indicators
        )
        if not screen.passed:
            logger.info("%s: screened out (%s)", symbol, screen.rejection)
            return Screened(symbol, screen.rejection or "rejected", screen.score)

        outcome = self.synthesizer.synthesize(
            series, ratios=ratios, analyst_targets=targets, snapshot=snapshot
        )
        if isinstance(outcome, BackendUnavailable):
            return Skipped(symbol, "backend_unavailable", outcome.message or outcome.reason)

        recommendation_id: Optional[int] = None
        if persist and self._qualifies(outcome.signal, outcome.analysis):
            if collector is not None and not collector.claim(symbol):
                logger.warning("%s: already closed out by the batch; not persisting", symbol)
                return Skipped(symbol, "timeout", "finished after the batch gave up on it")
            draft = self._build_draft(symbol, snapshot.current_price, outcome.signal,
                                      outcome.analysis, screen)
            try:
                recommendation_id = self.store.create(draft).id
            except PersistenceError as exc:
                logger.error("%s: could not store recommendation: %s", symbol, exc)
                return Skipped(symbol, "persistence_failure", str(exc))

        return Analyzed(
            symbol=symbol,
            signal=outcome.signal,
            analysis=outcome.analysis,
            method=outcome.method,
            screen=screen,
            recommendation_id=recommendation_id,
        )

    def _fetch_ratios(self, symbol: str) -> Optional[FundamentalRatios]:
        try:
            return self.provider.fetch_ratios(symbol)
        except DataUnavailableError as exc:
            logger.info("%s: ratios unavailable (%s)", symbol, exc.reason)
            return None

    def _fetch_analyst_targets(self, symbol: str) -> Optional[list[AnalystTarget]]:
        try:
            return self.provider.fetch_analyst_targets(symbol)
        except DataUnavailableError as exc:
            logger.info("%s: analyst calls unavailable (%s)", symbol, exc.reason)
            return None

    def _qualifies(self, signal: Signal, analysis: DeepAnalysis) -> bool:
        return (
            signal.signal_type == "BUY"
            and signal.confidence >= self.config.orchestrator.min_buy_confidence
            and analysis.target_price is not None
        )

    def _build_draft(
        self,
        symbol: str,
        current_price: float,
        signal: Signal,
        analysis: DeepAnalysis,
        screen: ScreenResult,
    ) -> RecommendationDraft:
        stop_loss = analysis.stop_loss
        if stop_loss is None:
            stop_loss = round(
                current_price * self.config.recommendations.default_cut_loss_ratio, 2
            )
        short, long = analysis.short_term, analysis.long_term
        return RecommendationDraft(
            symbol=symbol,
            recommended_price=current_price,
            current_price=current_price,
            target_price=analysis.target_price,
            stop_loss=stop_loss,
            confidence=signal.confidence,
            ai_signal=signal.signal_type,
            technical_analysis=[short.signal.summary, *short.reasons],
            fundamental_analysis=[long.signal.summary, *long.reasons, *screen.reasons],
            risks=list(analysis.risks),
            opportunities=list(analysis.opportunities),
        )

    # ── Run metadata ──────────────────────────────────────────────────────────

    def _persist_run_start(self, run_slug: str, symbols: list[str]) -> Optional[int]:
        """Write the initial run_metadata record.

        Returns the run_id, or None if persistence fails (non-fatal).
        """
        try:
            from stock_signals.db.connection import get_connection
            from stock_signals.db.repositories.run_repo import RunMetadataRepository
            from stock_signals.db.schema import apply_schema
            from stock_signals.models.meta import RunMetadata

            run = RunMetadata(
                run_slug=run_slug,
                pipeline_stage="batch_analysis",
                config_snapshot={"symbols": symbols, **self.config.model_dump()},
                started_at=utcnow(),
            )
            with get_connection(
                self.db_path,
                wal_mode=self.config.database.wal_mode,
                busy_timeout_ms=self.config.database.busy_timeout_ms,
            ) as conn:
                apply_schema(conn)
                return RunMetadataRepository(conn).insert_run(run)
        except Exception as exc:
            logger.warning("Could not persist batch run start: %s", exc)
            return None

    def _persist_run_finish(self, result: BatchResult) -> None:
        """Update the run_metadata record with final status."""
        if result.run_id is None:
            return
        try:
            from stock_signals.db.connection import get_connection

            skips = result.skip_counts()
            error_msg = (
                "; ".join(f"{reason}={n}" for reason, n in sorted(skips.items()))
                if skips else None
            )
            with get_connection(
                self.db_path,
                wal_mode=self.config.database.wal_mode,
                busy_timeout_ms=self.config.database.busy_timeout_ms,
            ) as conn:
                conn.execute(
                    """
                    UPDATE run_metadata
                    SET status = ?, rows_processed = ?, error_message = ?, finished_at = ?
                    WHERE run_id = ?;
                    """,
                    (
                        result.status,
                        len(result.outcomes),
                        error_msg,
                        (result.finished_at or utcnow()).isoformat(),
                        result.run_id,
                    ),
                )
        except Exception as exc:
            logger.warning("Could not persist batch run finish: %s", exc)
