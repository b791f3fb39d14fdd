"""
Catalog generation lifecycle.

A refresh is a three-phase saga without an enclosing transaction:

    1. DEACTIVATE  active entries from earlier generations   (failure logged)
    2. INSERT      the new generation, stamped active        (failure fatal)
    3. PURGE       inactive entries past the retention window (failure logged)

Each phase commits on its own. Price resolution running concurrently reads
whatever is active at that moment and may briefly see two generations.
Only one refresh may run at a time; the scheduler enforces that.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gcp_boq.config import EngineConfig
from gcp_boq.db.repositories import CatalogRepository
from gcp_boq.exceptions import CatalogRefreshError, StaleCatalogGenerationError
from gcp_boq.models.models import CatalogEntryRecord
from gcp_boq.models.schemas import CatalogEntry

logger = structlog.get_logger()


class CatalogLifecycleManager:
    """
    Moves the catalog from one generation to the next.

    Invariant: at most one active entry per (SKU, region). A refresh dated
    before the newest active generation is rejected before anything is
    written; re-running the same date updates in place.
    """

    def __init__(self, db: Session, config: Optional[EngineConfig] = None):
        self.db = db
        self.config = config or EngineConfig()
        self.catalog = CatalogRepository(db)

    def refresh(
        self,
        new_entries: Sequence[CatalogEntry],
        effective_date: date,
    ) -> Dict[str, Any]:
        """
        Replace the active catalog generation.

        Args:
            new_entries: Normalized entries for the new generation
            effective_date: Date stamped on every new entry

        Returns:
            Refresh report: effective_date, total_records, categories,
            update_timestamp (and error if the report query failed)

        Raises:
            StaleCatalogGenerationError: If a newer generation is already active
            CatalogRefreshError: If the new generation cannot be inserted
        """
        self._check_not_stale(effective_date)

        logger.info(
            "catalog_refresh_started",
            effective_date=effective_date.isoformat(),
            entries=len(new_entries),
        )

        self._deactivate_previous(effective_date)
        self._insert_generation(new_entries, effective_date)
        self._purge_expired(effective_date)

        report = self.generate_report(effective_date, len(new_entries))
        logger.info(
            "catalog_refresh_completed",
            effective_date=effective_date.isoformat(),
            total_records=len(new_entries),
        )
        return report

    def _check_not_stale(self, effective_date: date) -> None:
        active_date = self.catalog.latest_active_date()
        if active_date is not None and effective_date < active_date:
            logger.error(
                "catalog_refresh_stale",
                effective_date=effective_date.isoformat(),
                active_date=active_date.isoformat(),
            )
            raise StaleCatalogGenerationError(effective_date, active_date)

    def _deactivate_previous(self, effective_date: date) -> None:
        try:
            deactivated = self.catalog.deactivate_before(effective_date)
            self.db.commit()
            logger.info("catalog_previous_generation_deactivated", count=deactivated)
        except SQLAlchemyError as e:
            # Stale active entries are tolerated until the next refresh
            self.db.rollback()
            logger.error("catalog_deactivate_failed", error=str(e))

    def _insert_generation(self, entries: Sequence[CatalogEntry], effective_date: date) -> None:
        try:
            written = self.catalog.upsert_generation(
                entries, effective_date, batch_size=self.config.insert_batch_size
            )
            self.db.commit()
            logger.info("catalog_generation_inserted", count=written)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("catalog_insert_failed", error=str(e))
            raise CatalogRefreshError(effective_date, f"insert failed: {e}") from e

    def _purge_expired(self, effective_date: date) -> None:
        cutoff = effective_date - timedelta(days=self.config.retention_days)
        try:
            purged = self.catalog.purge_inactive(cutoff)
            self.db.commit()
            logger.info("catalog_expired_entries_purged", count=purged, cutoff=cutoff.isoformat())
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("catalog_purge_failed", error=str(e))

    def generate_report(self, effective_date: date, total_records: int) -> Dict[str, Any]:
        """Summarize the active generation for ``effective_date``."""
        report: Dict[str, Any] = {
            "effective_date": effective_date.isoformat(),
            "total_records": total_records,
            "update_timestamp": datetime.utcnow().isoformat(),
        }
        try:
            report["categories"] = self.catalog.category_report(effective_date)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("catalog_report_failed", error=str(e))
            report["categories"] = []
            report["error"] = str(e)
        return report

    def get_active_generations(self) -> List[Dict[str, Any]]:
        """
        Effective dates that currently have active entries.

        More than one row means a refresh is in flight or a deactivation
        failed.
        """
        rows = self.db.execute(
            select(CatalogEntryRecord.effective_date, func.count(CatalogEntryRecord.id))
            .where(CatalogEntryRecord.is_active.is_(True))
            .group_by(CatalogEntryRecord.effective_date)
            .order_by(CatalogEntryRecord.effective_date.desc())
        ).all()

        return [
            {"effective_date": effective.isoformat(), "active_entries": count}
            for effective, count in rows
        ]
