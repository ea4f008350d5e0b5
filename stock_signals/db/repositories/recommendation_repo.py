"""
Repository for the ``recommendations`` table.

Pure SQL; no lifecycle rules live here. Status derivation and transition
guards belong to ``RecommendationStore``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Optional

from stock_signals.db.repositories.base import BaseRepository
from stock_signals.models.recommendation import Recommendation
from stock_signals.utils.time_utils import parse_iso_datetime

logger = logging.getLogger(__name__)


class RecommendationRepository(BaseRepository):
    """Read/write access to ``recommendations``."""

    def insert(self, fields: dict[str, Any], now: datetime) -> int:
        """Insert a new active recommendation and return its id.

        Args:
            fields: Validated draft fields (symbol, prices, confidence, lists).
            now:    Creation timestamp (UTC).
        """
        self.execute(
            """
            INSERT INTO recommendations (
                symbol, recommended_price, current_price, target_price, stop_loss,
                confidence, ai_signal, technical_analysis, fundamental_analysis,
                risks, opportunities, status, gain_loss, gain_loss_pct,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'active', ?, ?, ?, ?);
            """,
            (
                fields["symbol"],
                fields["recommended_price"],
                fields["current_price"],
                fields.get("target_price"),
                fields.get("stop_loss"),
                fields["confidence"],
                fields["ai_signal"],
                json.dumps(fields.get("technical_analysis") or [], ensure_ascii=False),
                json.dumps(fields.get("fundamental_analysis") or [], ensure_ascii=False),
                json.dumps(fields.get("risks") or [], ensure_ascii=False),
                json.dumps(fields.get("opportunities") or [], ensure_ascii=False),
                fields.get("gain_loss"),
                fields.get("gain_loss_pct"),
                now.isoformat(),
                now.isoformat(),
            ),
        )
        return self.last_insert_rowid()

    def get(self, recommendation_id: int) -> Optional[Recommendation]:
        row = self.fetchone(
            "SELECT * FROM recommendations WHERE recommendation_id = ?;",
            (recommendation_id,),
        )
        return _row_to_recommendation(row) if row else None

    def list_by_status(self, status: Optional[str] = None) -> list[Recommendation]:
        """All recommendations, newest first, optionally filtered by status."""
        if status:
            rows = self.fetchall(
                """
                SELECT * FROM recommendations
                WHERE status = ?
                ORDER BY created_at DESC, recommendation_id DESC;
                """,
                (status,),
            )
        else:
            rows = self.fetchall(
                """
                SELECT * FROM recommendations
                ORDER BY created_at DESC, recommendation_id DESC;
                """
            )
        return [_row_to_recommendation(r) for r in rows]

    def update_price(
        self,
        recommendation_id: int,
        current_price: float,
        gain_loss: float,
        gain_loss_pct: float,
        now: datetime,
    ) -> None:
        self.execute(
            """
            UPDATE recommendations SET
                current_price = ?,
                gain_loss     = ?,
                gain_loss_pct = ?,
                updated_at    = ?
            WHERE recommendation_id = ?;
            """,
            (current_price, gain_loss, gain_loss_pct, now.isoformat(), recommendation_id),
        )

    def close(self, recommendation_id: int, status: str, now: datetime) -> None:
        """Move an active record to a terminal ``status``.

        The ``status = 'active'`` guard makes a second close a no-op even if
        two writers race past the store's lock.
        """
        self.execute(
            """
            UPDATE recommendations SET
                status     = ?,
                closed_at  = ?,
                updated_at = ?
            WHERE recommendation_id = ? AND status = 'active';
            """,
            (status, now.isoformat(), now.isoformat(), recommendation_id),
        )


def _row_to_recommendation(row: sqlite3.Row) -> Recommendation:
    return Recommendation(
        id=row["recommendation_id"],
        symbol=row["symbol"],
        recommended_price=row["recommended_price"],
        current_price=row["current_price"],
        target_price=row["target_price"],
        stop_loss=row["stop_loss"],
        confidence=row["confidence"],
        ai_signal=row["ai_signal"],
        technical_analysis=json.loads(row["technical_analysis"]),
        fundamental_analysis=json.loads(row["fundamental_analysis"]),
        risks=json.loads(row["risks"]),
        opportunities=json.loads(row["opportunities"]),
        status=row["status"],
        gain_loss=row["gain_loss"],
        gain_loss_pct=row["gain_loss_pct"],
        created_at=parse_iso_datetime(row["created_at"]),
        updated_at=parse_iso_datetime(row["updated_at"]),
        closed_at=parse_iso_datetime(row["closed_at"]),
    )
