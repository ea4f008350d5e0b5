"""
Recommendation report writer: CSV and JSON output.

All functions are pure I/O — no DB access. They consume in-memory
``Recommendation`` lists / ``PerformanceMetrics`` and write files.

Output files (written by ``stock-signals recommendations export``)
-----------------------------------------------------------------
  data/outputs/recommendations/
    recommendations_{date}.csv   -- one row per tracked recommendation
    performance_{date}.json      -- aggregate metrics + per-record detail
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import date
from pathlib import Path
from typing import Optional, Sequence

from stock_signals.models.recommendation import PerformanceMetrics, Recommendation

logger = logging.getLogger(__name__)

CSV_FIELDS = [
    "id", "symbol", "status", "ai_signal", "confidence",
    "recommended_price", "current_price", "target_price", "stop_loss",
    "gain_loss", "gain_loss_pct", "created_at", "closed_at",
]


def write_recommendations_csv(
    records: Sequence[Recommendation],
    output_dir: Path,
    run_date: Optional[date] = None,
) -> Path:
    """Write every recommendation to ``recommendations_{date}.csv``.

    Rows are ordered newest first, matching ``RecommendationStore.list()``.

    Returns:
        Path to the written CSV file.
    """
    if run_date is None:
        run_date = date.today()

    output_dir.mkdir(parents=True, exist_ok=True)
    csv_path = output_dir / f"recommendations_{run_date}.csv"

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for rec in records:
            writer.writerow(
                {
                    "id":                rec.id,
                    "symbol":            rec.symbol,
                    "status":            rec.status,
                    "ai_signal":         rec.ai_signal,
                    "confidence":        rec.confidence,
                    "recommended_price": rec.recommended_price,
                    "current_price":     rec.current_price,
                    "target_price":      rec.target_price if rec.target_price is not None else "",
                    "stop_loss":         rec.stop_loss if rec.stop_loss is not None else "",
                    "gain_loss":         rec.gain_loss if rec.gain_loss is not None else "",
                    "gain_loss_pct":     (
                        f"{rec.gain_loss_pct:+.2f}%" if rec.gain_loss_pct is not None else ""
                    ),
                    "created_at":        rec.created_at.isoformat(),
                    "closed_at":         rec.closed_at.isoformat() if rec.closed_at else "",
                }
            )

    logger.info("Wrote %d recommendation rows → %s", len(records), csv_path)
    return csv_path


def write_performance_json(
    metrics: PerformanceMetrics,
    records: Sequence[Recommendation],
    output_dir: Path,
    run_date: Optional[date] = None,
) -> Path:
    """Write metrics plus per-record detail to ``performance_{date}.json``.

    Returns:
        Path to the written JSON file.
    """
    if run_date is None:
        run_date = date.today()

    output_dir.mkdir(parents=True, exist_ok=True)
    json_path = output_dir / f"performance_{run_date}.json"

    payload = {
        "run_date": run_date.isoformat(),
        "metrics": metrics.model_dump(),
        "recommendations": [rec.model_dump(mode="json") for rec in records],
    }
    json_path.write_text(
        json.dumps(payload, indent=2, ensure_ascii=False, default=str), encoding="utf-8"
    )
    logger.info("Wrote performance report → %s", json_path)
    return json_path
