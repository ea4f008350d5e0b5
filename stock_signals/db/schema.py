"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Tables:
  1. recommendations  (no FKs) — tracked BUY calls and their lifecycle
  2. run_metadata     (no FKs) — batch / refresh audit log

List-valued recommendation fields (technical_analysis, risks, ...) are stored
as JSON arrays in TEXT columns.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_RECOMMENDATIONS = """
CREATE TABLE IF NOT EXISTS recommendations (
    recommendation_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol               TEXT    NOT NULL,
    recommended_price    REAL    NOT NULL CHECK (recommended_price > 0),
    current_price        REAL    NOT NULL CHECK (current_price > 0),
    target_price         REAL,
    stop_loss            REAL,
    confidence           INTEGER NOT NULL CHECK (confidence BETWEEN 0 AND 100),
    ai_signal            TEXT    NOT NULL,
    technical_analysis   TEXT    NOT NULL DEFAULT '[]',
    fundamental_analysis TEXT    NOT NULL DEFAULT '[]',
    risks                TEXT    NOT NULL DEFAULT '[]',
    opportunities        TEXT    NOT NULL DEFAULT '[]',
    status               TEXT    NOT NULL DEFAULT 'active'
                         CHECK (status IN ('active', 'completed', 'stopped')),
    gain_loss            REAL,
    gain_loss_pct        REAL,
    created_at           TEXT    NOT NULL,
    updated_at           TEXT    NOT NULL,
    closed_at            TEXT
);
"""

_DDL_RECOMMENDATIONS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_recommendations_status
    ON recommendations(status);
CREATE INDEX IF NOT EXISTS idx_recommendations_symbol
    ON recommendations(symbol);
CREATE INDEX IF NOT EXISTS idx_recommendations_created
    ON recommendations(created_at);
"""

_DDL_RUN_METADATA = """
CREATE TABLE IF NOT EXISTS run_metadata (
    run_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug        TEXT    NOT NULL UNIQUE,
    pipeline_stage  TEXT    NOT NULL,
    status          TEXT    NOT NULL DEFAULT 'started',
    config_snapshot TEXT    NOT NULL,
    rows_processed  INTEGER NOT NULL DEFAULT 0,
    error_message   TEXT,
    started_at      TEXT    NOT NULL,
    finished_at     TEXT
);
"""

# ── Ordered list of all DDL to apply ──────────────────────────────────────────

_ALL_DDL: list[str] = [
    _DDL_RECOMMENDATIONS,
    _DDL_RECOMMENDATIONS_INDEXES,
    _DDL_RUN_METADATA,
]

# Table names for introspection / tests
ALL_TABLE_NAMES = [
    "recommendations",
    "run_metadata",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent — safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection``.
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return table names present in the database, sorted alphabetically."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
