"""
Scheduled Pricing Refresh Job
Refreshes the pricing catalog from the Cloud Billing Catalog API or a saved export
Can be triggered manually or via cron
"""
import argparse
import sys
from datetime import date
from pathlib import Path

import structlog

from gcp_boq.config import settings
from gcp_boq.db.database import SyncSessionLocal, init_db
from gcp_boq.exceptions import BoQError
from gcp_boq.pricing.ingestion import load_price_entries_from_file
from gcp_boq.pricing.refresh import CatalogRefreshPipeline

logger = structlog.get_logger()


def run_pricing_update(file_path: Path = None, effective_date: date = None) -> dict:
    """Run one catalog refresh and return its report."""
    logger.info("starting_pricing_update", file=str(file_path) if file_path else None)
    init_db()

    raw_entries = None
    source = "cloud-billing-api"
    if file_path is not None:
        raw_entries = load_price_entries_from_file(file_path)
        source = f"file:{file_path.name}"

    db = SyncSessionLocal()
    try:
        return CatalogRefreshPipeline(db, settings.engine_config()).run(
            raw_entries=raw_entries,
            effective_date=effective_date,
            source=source,
        )
    finally:
        db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Refresh the GCP pricing catalog")
    parser.add_argument("--file", type=Path, help="Saved SKU export ({\"skus\": [...]})")
    parser.add_argument("--effective-date", type=date.fromisoformat, help="Generation date (YYYY-MM-DD)")
    args = parser.parse_args(argv)

    try:
        report = run_pricing_update(args.file, args.effective_date)
    except BoQError as e:
        logger.error("pricing_update_failed", error=str(e))
        return 1

    logger.info("pricing_update_complete", **report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
