"""
Abstract base class for audited pipeline stages.

Every stage follows the same contract:
  1. Receive ``AppConfig`` at construction.
  2. ``run(**kwargs)`` is the sole public API.
  3. ``run()`` creates a ``RunMetadata`` record, calls ``_execute()``,
     and persists the run record with final status.
  4. ``_execute()`` is the stage-specific implementation.

Usage::

    class RefreshPricesStage(PipelineStage):
        stage_name = "refresh_prices"

        def _execute(self, run: RunMetadata, **kwargs) -> int:
            return 42

    run = RefreshPricesStage(config=app_config).run()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from uuid import uuid4

from stock_signals.config import AppConfig
from stock_signals.models.meta import RunMetadata
from stock_signals.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """Abstract base for audited stages.

    Attributes:
        stage_name: Identifier matching a valid ``RunMetadata.pipeline_stage``.
        config: The application configuration for this run.
        db_path: SQLite path (defaults to ``config.database.db_path``).
    """

    stage_name: str

    def __init__(
        self,
        config: AppConfig,
        db_path: str | None = None,
    ) -> None:
        self.config = config
        self.db_path = db_path or config.database.db_path

    def run(self, **kwargs) -> RunMetadata:
        """Execute this stage and return the finalized run record.

        Raises:
            Exception: Re-raises any exception from ``_execute()`` after
                recording ``status='failed'``.
        """
        run = RunMetadata(
            run_slug=str(uuid4()),
            pipeline_stage=self.stage_name,
            config_snapshot=self.config.model_dump(),
            started_at=utcnow(),
        )
        logger.info("Stage [%s] starting | run_slug=%s", self.stage_name, run.run_slug)
        self._persist_run(run)

        try:
            rows = self._execute(run=run, **kwargs)
        except Exception as exc:
            run.status = "failed"
            run.error_message = str(exc)
            run.finished_at = utcnow()
            logger.error(
                "Stage [%s] FAILED: %s | run_slug=%s", self.stage_name, exc, run.run_slug
            )
            self._persist_run(run)
            raise

        if run.status == "started":
            run.status = "success"
        run.rows_processed = rows
        run.finished_at = utcnow()
        logger.info(
            "Stage [%s] %s | rows=%d | run_slug=%s",
            self.stage_name, run.status, rows, run.run_slug,
        )
        self._persist_run(run)
        return run

    @abstractmethod
    def _execute(self, run: RunMetadata, **kwargs) -> int:
        """Stage-specific work; returns the number of items processed.

        May set ``run.status`` (e.g. ``"partial"``) and ``run.error_message``.
        """
        ...

    def _persist_run(self, run: RunMetadata) -> None:
        """Insert or update the run record.

        Failures are logged, not raised, so they never mask a stage error.
        """
        try:
            from stock_signals.db.connection import get_connection
            from stock_signals.db.repositories.run_repo import RunMetadataRepository
            from stock_signals.db.schema import apply_schema

            with get_connection(
                self.db_path,
                wal_mode=self.config.database.wal_mode,
                busy_timeout_ms=self.config.database.busy_timeout_ms,
            ) as conn:
                apply_schema(conn)
                repo = RunMetadataRepository(conn)
                if run.run_id is None:
                    run.run_id = repo.insert_run(run)
                else:
                    repo.update_run(run)
        except Exception as exc:
            logger.error(
                "Failed to persist RunMetadata for run_slug=%s: %s", run.run_slug, exc
            )
