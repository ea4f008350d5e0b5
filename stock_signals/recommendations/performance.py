"""
Performance aggregation over tracked recommendations.

Pure function over a list of ``Recommendation`` objects; the store reads the
rows and calls ``compute_performance``. Nothing is cached or written back, so
calling it twice over the same rows gives identical results.

Definitions
-----------
- Closed records are the terminal ones (``completed`` or ``stopped``).
- ``win_rate``              = completed / (completed + stopped) × 100.
- ``average_realized_gain`` = mean return % over closed records.
- ``average_gain``          = mean return % over closed records with return > 0.
- ``average_loss``          = mean return % over closed records with return < 0.
- ``total_gain_loss``       = sum of return % over closed records.
- Best/worst performer by return % over closed records; ``None`` until one closes.
"""

from __future__ import annotations

from typing import Optional, Sequence

from stock_signals.models.recommendation import PerformanceMetrics, Performer, Recommendation


def _mean(values: list[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def _performer(rec: Optional[Recommendation]) -> Optional[Performer]:
    if rec is None:
        return None
    return Performer(
        recommendation_id=rec.id, symbol=rec.symbol, gain_loss_pct=round(rec.return_pct, 2)
    )


def compute_performance(records: Sequence[Recommendation]) -> PerformanceMetrics:
    """Aggregate ``records`` into ``PerformanceMetrics``."""
    if not records:
        return PerformanceMetrics()

    completed = [r for r in records if r.status == "completed"]
    stopped = [r for r in records if r.status == "stopped"]
    closed = completed + stopped
    closed_returns = [r.return_pct for r in closed]

    win_rate = len(completed) / len(closed) * 100.0 if closed else 0.0

    best = max(closed, key=lambda r: r.return_pct) if closed else None
    worst = min(closed, key=lambda r: r.return_pct) if closed else None

    return PerformanceMetrics(
        total=len(records),
        active=sum(1 for r in records if r.status == "active"),
        completed=len(completed),
        stopped=len(stopped),
        win_rate=round(win_rate, 2),
        average_realized_gain=_mean(closed_returns),
        average_gain=_mean([x for x in closed_returns if x > 0]),
        average_loss=_mean([x for x in closed_returns if x < 0]),
        total_gain_loss=round(sum(closed_returns), 2),
        best_performer=_performer(best),
        worst_performer=_performer(worst),
    )
