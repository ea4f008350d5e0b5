"""Tests for SQLite schema — idempotency, table/index creation, CHECK constraints."""

from __future__ import annotations

import sqlite3

import pytest

from stock_signals.db.schema import ALL_TABLE_NAMES, apply_schema, get_existing_tables


def _insert_recommendation(conn: sqlite3.Connection, **overrides) -> None:
    row = {
        "symbol": "FPT",
        "recommended_price": 100_000.0,
        "current_price": 100_000.0,
        "confidence": 80,
        "ai_signal": "BUY",
        "status": "active",
        "created_at": "2024-11-15T08:00:00+00:00",
        "updated_at": "2024-11-15T08:00:00+00:00",
    }
    row.update(overrides)
    cols = ", ".join(row)
    marks = ", ".join("?" for _ in row)
    conn.execute(f"INSERT INTO recommendations ({cols}) VALUES ({marks});", tuple(row.values()))


class TestApplySchema:
    def test_all_tables_created(self, in_memory_db):
        tables = get_existing_tables(in_memory_db)
        for expected_table in ALL_TABLE_NAMES:
            assert expected_table in tables, (
                f"Expected table '{expected_table}' not found in database. "
                f"Found: {tables}"
            )

    def test_idempotent_double_apply(self, in_memory_db):
        """apply_schema() called twice must not raise errors."""
        apply_schema(in_memory_db)
        tables = get_existing_tables(in_memory_db)
        assert len(tables) >= len(ALL_TABLE_NAMES)

    def test_key_indexes_created(self, in_memory_db):
        rows = in_memory_db.execute(
            "SELECT name FROM sqlite_master WHERE type='index';"
        ).fetchall()
        indexes = {row["name"] for row in rows}
        for idx in (
            "idx_recommendations_status",
            "idx_recommendations_symbol",
            "idx_recommendations_created",
        ):
            assert idx in indexes


class TestRecommendationConstraints:
    def test_valid_row_inserts(self, in_memory_db):
        _insert_recommendation(in_memory_db)
        count = in_memory_db.execute("SELECT COUNT(*) FROM recommendations;").fetchone()[0]
        assert count == 1

    def test_list_columns_default_to_empty_json(self, in_memory_db):
        _insert_recommendation(in_memory_db)
        row = in_memory_db.execute("SELECT risks, opportunities FROM recommendations;").fetchone()
        assert row["risks"] == "[]"
        assert row["opportunities"] == "[]"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"recommended_price": 0},
            {"current_price": -5},
            {"confidence": 101},
            {"confidence": -1},
            {"status": "pending"},
        ],
    )
    def test_check_constraints_reject_bad_rows(self, in_memory_db, overrides):
        with pytest.raises(sqlite3.IntegrityError):
            _insert_recommendation(in_memory_db, **overrides)
