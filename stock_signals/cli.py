"""
Stock Signals — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, analysis, recommendation tracking, etc.).
  5. Report result to stdout.

Install and run::

    pip install -e .
    stock-signals --help
    stock-signals init-db
    stock-signals validate-config
    stock-signals analyze FPT
    stock-signals run-batch FPT VNM HPG MWG VCB
    stock-signals backend-health
    stock-signals recommendations list --status active
    stock-signals recommendations refresh-prices
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="stock-signals",
    help="Vietnamese equity signal synthesis and recommendation tracking CLI.",
    add_completion=False,
)
recommendations_app = typer.Typer(
    help="Create, list and track stored BUY recommendations.",
    add_completion=False,
)
app.add_typer(recommendations_app, name="recommendations")


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from stock_signals.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from stock_signals.utils.logging import configure_logging
    configure_logging(config.logging)


def _open_store(config, db_path: Optional[str] = None):
    """Open the recommendation store, exiting on a storage failure."""
    from stock_signals.errors import PersistenceError
    from stock_signals.recommendations.store import RecommendationStore

    try:
        return RecommendationStore(
            db_path or config.database.db_path,
            wal_mode=config.database.wal_mode,
            busy_timeout_ms=config.database.busy_timeout_ms,
        )
    except PersistenceError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


def _build_orchestrator(config, db_path: Optional[str] = None):
    from stock_signals.ingestion.vndirect_client import VNDirectClient
    from stock_signals.pipeline.orchestrator import BatchOrchestrator
    from stock_signals.synthesis.backend import GeminiBackend
    from stock_signals.synthesis.synthesizer import SignalSynthesizer

    synthesizer = SignalSynthesizer(
        GeminiBackend(config.backend),
        indicator_config=config.indicators,
        backend_config=config.backend,
        min_confidence=config.orchestrator.min_buy_confidence,
    )
    return BatchOrchestrator(
        config,
        provider=VNDirectClient(config.provider),
        synthesizer=synthesizer,
        store=_open_store(config, db_path),
        db_path=db_path,
    )


def _echo_outcome(outcome) -> None:
    from stock_signals.pipeline.orchestrator import Analyzed, Screened

    if isinstance(outcome, Analyzed):
        saved = (
            f" | saved #{outcome.recommendation_id}"
            if outcome.recommendation_id is not None else ""
        )
        typer.echo(
            f"  {outcome.symbol:<6} {outcome.signal.signal_type:<4} "
            f"{outcome.signal.confidence:>3}% ({outcome.method}){saved}"
        )
        typer.echo(f"         {outcome.signal.summary}")
    elif isinstance(outcome, Screened):
        typer.echo(f"  {outcome.symbol:<6} SCREENED  {outcome.reason}")
    else:
        typer.echo(f"  {outcome.symbol:<6} SKIPPED   {outcome.reason}: {outcome.message}")


def _echo_recommendation(rec) -> None:
    target = f"{rec.target_price:,.0f}" if rec.target_price is not None else "-"
    stop = f"{rec.stop_loss:,.0f}" if rec.stop_loss is not None else "-"
    pct = f"{rec.gain_loss_pct:+.2f}%" if rec.gain_loss_pct is not None else "-"
    typer.echo(
        f"  #{rec.id:<4} {rec.symbol:<6} {rec.status:<9} "
        f"entry={rec.recommended_price:,.0f} now={rec.current_price:,.0f} "
        f"target={target} stop={stop} {pct}"
    )


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    """
    from stock_signals.db.connection import get_connection
    from stock_signals.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Provider:         {config.provider.base_url}"
               f"{' (fixture mode)' if config.provider.use_fixture else ''}")
    typer.echo(f"  Backend model:    {config.backend.model}")
    typer.echo(f"  MA periods:       {config.indicators.ma_short}/{config.indicators.ma_long}")
    typer.echo(f"  Workers:          {config.orchestrator.max_workers}")
    typer.echo(f"  Min BUY conf.:    {config.orchestrator.min_buy_confidence}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("analyze")
def analyze(
    symbol: str = typer.Argument(..., help="Ticker to analyze (e.g. FPT)."),
    persist: bool = typer.Option(
        True,
        "--persist/--no-persist",
        help="Store a qualifying BUY as an active recommendation.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Run the full pipeline for a single symbol and print the signal."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    orchestrator = _build_orchestrator(config, db_path)
    typer.echo(f"analyze | symbol={symbol.upper()} | model={config.backend.model}")
    outcome = orchestrator.analyze_symbol(symbol, persist=persist)
    _echo_outcome(outcome)


@app.command("run-batch")
def run_batch(
    symbols: list[str] = typer.Argument(..., help="Tickers to analyze."),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        help="Override orchestrator.max_workers.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Analyze a batch of symbols concurrently.

    \b
    Per symbol: fetch → indicators → screen → synthesize → validate → persist.
    Symbols that fail are reported and counted; the batch always completes.

    \b
    Credential setup (.env, gitignored):
      GEMINI_API_KEY=...             → enables the generative backend
    """
    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if workers is not None:
        if workers < 1:
            typer.echo("[ERROR] --workers must be >= 1.", err=True)
            raise typer.Exit(code=1)
        config = config.model_copy(
            update={"orchestrator": config.orchestrator.model_copy(update={"max_workers": workers})}
        )

    orchestrator = _build_orchestrator(config, db_path)
    typer.echo(
        f"run-batch | symbols={len(symbols)} | workers={config.orchestrator.max_workers}"
    )
    result = orchestrator.run(symbols)

    for outcome in result.outcomes:
        _echo_outcome(outcome)

    typer.echo("")
    typer.echo(
        f"  analyzed={len(result.successes)} screened={len(result.screened)} "
        f"skipped={result.skipped_count} saved={len(result.persisted)}"
    )
    for reason, count in sorted(result.skip_counts().items()):
        typer.echo(f"    {reason}: {count}")
    typer.echo(f"[OK] Batch {result.status}.")


@app.command("backend-health")
def backend_health(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Send a minimal request to the generative backend and report the result."""
    from stock_signals.synthesis.backend import GeminiBackend, active_models

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    typer.echo("Registered models:")
    for model in active_models():
        marker = "*" if model.model_id == config.backend.model else " "
        typer.echo(f"  {marker} {model.model_id:<24} {model.description}")

    ok, message = GeminiBackend(config.backend).health_check()
    if not ok:
        typer.echo(f"[ERROR] Backend unavailable: {message}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"[OK] {message}.")


# ── Recommendations ───────────────────────────────────────────────────────────

@recommendations_app.command("create")
def recommendations_create(
    symbol: str = typer.Option(..., "--symbol", help="Ticker."),
    recommended_price: float = typer.Option(..., "--price", help="Entry price (VND)."),
    current_price: Optional[float] = typer.Option(
        None, "--current-price", help="Current price (VND); defaults to --price."
    ),
    target_price: Optional[float] = typer.Option(None, "--target", help="Target price (VND)."),
    stop_loss: Optional[float] = typer.Option(None, "--stop-loss", help="Stop-loss (VND)."),
    confidence: int = typer.Option(..., "--confidence", help="Confidence 0-100."),
    ai_signal: str = typer.Option("BUY", "--signal", help="Signal label."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Store a recommendation by hand."""
    from stock_signals.errors import PersistenceError, RecommendationValidationError
    from stock_signals.models.recommendation import RecommendationDraft

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    store = _open_store(config, db_path)

    draft = RecommendationDraft(
        symbol=symbol,
        recommended_price=recommended_price,
        current_price=current_price if current_price is not None else recommended_price,
        target_price=target_price,
        stop_loss=stop_loss,
        confidence=confidence,
        ai_signal=ai_signal.upper(),
    )
    try:
        rec = store.create(draft)
    except (RecommendationValidationError, PersistenceError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    _echo_recommendation(rec)
    typer.echo(f"[OK] Created recommendation #{rec.id}.")


@recommendations_app.command("list")
def recommendations_list(
    status: Optional[str] = typer.Option(
        None, "--status", help="Filter: active, completed or stopped."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """List stored recommendations, newest first."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    store = _open_store(config, db_path)

    try:
        records = store.list(status)
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    if not records:
        typer.echo("No recommendations found.")
        return
    for rec in records:
        _echo_recommendation(rec)
    typer.echo(f"\n{len(records)} recommendation(s).")


@recommendations_app.command("update-status")
def recommendations_update_status(
    recommendation_id: int = typer.Argument(..., help="Recommendation id."),
    current_price: float = typer.Option(..., "--price", help="Current market price (VND)."),
    status: Optional[str] = typer.Option(
        None, "--status", help="Explicit status; derived from price when omitted."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Record a price and apply (or derive) the recommendation status."""
    from stock_signals.errors import StockSignalsError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    store = _open_store(config, db_path)

    try:
        rec = store.update_status(recommendation_id, current_price, status)
    except (StockSignalsError, ValueError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    _echo_recommendation(rec)
    typer.echo(f"[OK] Recommendation #{rec.id} is {rec.status}.")


@recommendations_app.command("performance")
def recommendations_performance(
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Print win rate and realized gains over all stored recommendations."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    metrics = _open_store(config, db_path).compute_performance()

    typer.echo(f"  Total:            {metrics.total}")
    typer.echo(f"  Active:           {metrics.active}")
    typer.echo(f"  Completed:        {metrics.completed}")
    typer.echo(f"  Stopped:          {metrics.stopped}")
    typer.echo(f"  Win rate:         {metrics.win_rate:.2f}%")
    typer.echo(f"  Avg realized:     {metrics.average_realized_gain:+.2f}%")
    typer.echo(f"  Avg gain / loss:  {metrics.average_gain:+.2f}% / {metrics.average_loss:+.2f}%")
    if metrics.best_performer is not None:
        best = metrics.best_performer
        typer.echo(f"  Best:             {best.symbol} ({best.gain_loss_pct:+.2f}%)")
    if metrics.worst_performer is not None:
        worst = metrics.worst_performer
        typer.echo(f"  Worst:            {worst.symbol} ({worst.gain_loss_pct:+.2f}%)")


@recommendations_app.command("refresh-prices")
def recommendations_refresh_prices(
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Mark every active recommendation to market and enforce target/stop-loss."""
    from stock_signals.ingestion.vndirect_client import VNDirectClient
    from stock_signals.pipeline.refresh import RefreshPricesStage

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    stage = RefreshPricesStage(
        config,
        provider=VNDirectClient(config.provider),
        store=_open_store(config, db_path),
        db_path=db_path,
    )
    try:
        run = stage.run()
    except Exception as exc:
        typer.echo(f"[ERROR] Refresh failed: {exc}", err=True)
        raise typer.Exit(code=1)

    summary = stage.summary
    assert summary is not None
    typer.echo(
        f"  symbols={summary.symbols_checked} updated={summary.updated} "
        f"completed={summary.completed} stopped={summary.stopped}"
    )
    for line in summary.errors:
        typer.echo(f"    {line}", err=True)
    typer.echo(f"[OK] Refresh {run.status}.")


@recommendations_app.command("export")
def recommendations_export(
    output_dir: Optional[str] = typer.Option(
        None, "--output-dir", help="Override recommendations.export_dir."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Write recommendations CSV and performance JSON."""
    from stock_signals.recommendations.performance import compute_performance
    from stock_signals.recommendations.reporter import (
        write_performance_json,
        write_recommendations_csv,
    )

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    store = _open_store(config, db_path)

    records = store.list()
    target_dir = Path(output_dir or config.recommendations.export_dir)
    csv_path = write_recommendations_csv(records, target_dir)
    json_path = write_performance_json(compute_performance(records), records, target_dir)
    typer.echo(f"  {csv_path}")
    typer.echo(f"  {json_path}")
    typer.echo(f"[OK] Exported {len(records)} recommendation(s).")


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
