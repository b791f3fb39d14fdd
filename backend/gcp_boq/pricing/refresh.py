"""
Catalog refresh pipeline.
Fetches raw SKUs, normalizes them and hands the new generation to the
lifecycle manager. Every run leaves a row in catalog_refresh_logs.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from gcp_boq.config import EngineConfig, settings
from gcp_boq.models.models import CatalogRefreshLog
from gcp_boq.models.schemas import RawPriceEntry
from gcp_boq.pricing.ingestion import CloudBillingCatalogClient
from gcp_boq.pricing.lifecycle import CatalogLifecycleManager
from gcp_boq.pricing.normalization import CatalogNormalizer

logger = structlog.get_logger()


class CatalogRefreshPipeline:
    """Feed -> normalizer -> lifecycle manager, with an audit trail."""

    def __init__(
        self,
        db: Session,
        config: Optional[EngineConfig] = None,
        client: Optional[CloudBillingCatalogClient] = None,
        service_id: Optional[str] = None,
    ):
        self.db = db
        self.config = config or settings.engine_config()
        self.client = client
        self.service_id = service_id or settings.compute_engine_service_id
        self.logger = logger.bind(component="catalog_refresh", service_id=self.service_id)

    def _fetch(self) -> List[RawPriceEntry]:
        if self.client is not None:
            return self.client.fetch_price_entries(self.service_id)
        with CloudBillingCatalogClient() as client:
            return client.fetch_price_entries(self.service_id)

    def run(
        self,
        raw_entries: Optional[List[RawPriceEntry]] = None,
        effective_date: Optional[date] = None,
        source: str = "cloud-billing-api",
    ) -> Dict[str, Any]:
        """
        Run one refresh cycle.

        Args:
            raw_entries: Pre-loaded SKUs; fetched from the API when omitted
            effective_date: Generation date (defaults to today, UTC)
            source: Label recorded in the refresh log

        Returns:
            Refresh report from the lifecycle manager

        Raises:
            PricingFeedError: If the feed cannot be read
            StaleCatalogGenerationError: If a newer generation is already active
            CatalogRefreshError: If the new generation cannot be inserted
        """
        effective_date = effective_date or datetime.utcnow().date()

        log = CatalogRefreshLog(effective_date=effective_date, status="started", source=source)
        self.db.add(log)
        self.db.commit()

        try:
            if raw_entries is None:
                raw_entries = self._fetch()
            log.records_fetched = len(raw_entries)

            normalizer = CatalogNormalizer(self.config, service_id=self.service_id)
            entries = normalizer.normalize_all(raw_entries, effective_date)

            report = CatalogLifecycleManager(self.db, self.config).refresh(entries, effective_date)
        except Exception as e:
            self.db.rollback()
            # The log row must not be left as "started"
            self.logger.error("catalog_refresh_failed", error=str(e), error_type=type(e).__name__)
            log.status = "failed"
            log.error_message = str(e)
            log.completed_at = datetime.utcnow()
            self.db.commit()
            raise

        log.status = "completed"
        log.records_processed = report["total_records"]
        log.report = report
        log.completed_at = datetime.utcnow()
        self.db.commit()

        self.logger.info(
            "catalog_refresh_logged",
            effective_date=report["effective_date"],
            fetched=log.records_fetched,
            processed=log.records_processed,
        )
        return report
