"""
Background pricing scheduler.
Runs catalog refresh jobs on a cron schedule.
"""
from typing import Any, Dict, Optional

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from gcp_boq.config import settings
from gcp_boq.db.database import get_sync_session
from gcp_boq.exceptions import BoQError
from gcp_boq.pricing.refresh import CatalogRefreshPipeline

logger = structlog.get_logger()


class PricingScheduler:
    """Background scheduler for catalog refreshes."""

    def __init__(self, schedule: Optional[str] = None):
        self.scheduler = BackgroundScheduler()
        self.schedule = schedule or settings.pricing_update_schedule
        self.is_running = False

    def run_pricing_update(self) -> Optional[Dict[str, Any]]:
        """
        Run one refresh cycle in its own session.

        Failures are logged and swallowed so the next scheduled run still
        happens; the refresh log row records the failure.
        """
        logger.info("pricing_update_job_started")

        session_gen = get_sync_session()
        db = next(session_gen)
        try:
            report = CatalogRefreshPipeline(db).run()
        except BoQError as e:
            logger.error("pricing_update_job_failed", error=str(e))
            return None
        finally:
            session_gen.close()

        logger.info(
            "pricing_update_job_completed",
            effective_date=report["effective_date"],
            total_records=report["total_records"],
        )
        return report

    def start(self):
        """Start the scheduler."""
        if not settings.pricing_update_enabled:
            logger.info("pricing_updates_disabled")
            return

        if self.is_running:
            logger.warning("pricing_scheduler_already_running")
            return

        try:
            trigger = CronTrigger.from_crontab(self.schedule)
        except ValueError as e:
            logger.error("pricing_schedule_invalid", schedule=self.schedule, error=str(e))
            return

        # One refresh at a time; a late run is coalesced rather than stacked
        self.scheduler.add_job(
            self.run_pricing_update,
            trigger=trigger,
            id="pricing_update",
            name="Catalog Refresh Job",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        self.scheduler.start()
        self.is_running = True

        logger.info("pricing_scheduler_started", schedule=self.schedule)

    def stop(self):
        """Stop the scheduler."""
        if not self.is_running:
            return

        self.scheduler.shutdown()
        self.is_running = False
        logger.info("pricing_scheduler_stopped")

    def run_now(self) -> Optional[Dict[str, Any]]:
        """Run a refresh immediately (for manual triggers)."""
        logger.info("pricing_update_manual_run")
        return self.run_pricing_update()


# Global scheduler instance
pricing_scheduler = PricingScheduler()
