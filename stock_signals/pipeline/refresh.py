"""
RefreshPricesStage — mark active recommendations to market.

Looks up the latest close for each distinct active symbol and applies
``RecommendationStore.update_status`` per record, so targets and stop-losses
are enforced. Lookup failures for one symbol never stop the pass; the run is
recorded as ``partial`` when any occurred.
"""

from __future__ import annotations

import logging
from typing import Optional

from stock_signals.config import AppConfig
from stock_signals.ingestion.provider import PriceSeriesProvider
from stock_signals.models.meta import RunMetadata
from stock_signals.pipeline.base import PipelineStage
from stock_signals.recommendations.store import RecommendationStore, RefreshSummary

logger = logging.getLogger(__name__)


class RefreshPricesStage(PipelineStage):
    """Audited wrapper around ``RecommendationStore.refresh_all``.

    Args:
        config:   AppConfig for this run.
        provider: Source of latest prices.
        store:    Recommendation store; built from config when omitted.
        db_path:  Override DB path.
    """

    stage_name = "refresh_prices"

    def __init__(
        self,
        config: AppConfig,
        provider: PriceSeriesProvider,
        store: Optional[RecommendationStore] = None,
        db_path: Optional[str] = None,
    ) -> None:
        super().__init__(config, db_path=db_path)
        self.provider = provider
        self.store = store or RecommendationStore(
            self.db_path,
            wal_mode=config.database.wal_mode,
            busy_timeout_ms=config.database.busy_timeout_ms,
        )
        self.summary: Optional[RefreshSummary] = None

    def _execute(self, run: RunMetadata, **kwargs) -> int:
        summary = self.store.refresh_all(
            self.provider.fetch_latest_price,
            max_workers=self.config.recommendations.refresh_workers,
        )
        self.summary = summary
        if summary.errors:
            run.status = "partial"
            run.error_message = "; ".join(summary.errors)
            logger.warning(
                "Refresh finished with %d error(s); failed symbols: %s",
                len(summary.errors), ", ".join(summary.failed_symbols) or "-",
            )
        return summary.updated
