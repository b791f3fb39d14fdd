"""
Pricing catalog API endpoints.
"""
from datetime import date
from typing import Generator, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from gcp_boq.config import settings
from gcp_boq.db.database import get_sync_session
from gcp_boq.db.repositories import CatalogRepository
from gcp_boq.models.models import CatalogRefreshLog
from gcp_boq.models.schemas import CatalogCategory, CatalogEntry
from gcp_boq.pricing.ingestion import CloudBillingCatalogClient
from gcp_boq.pricing.lifecycle import CatalogLifecycleManager
from gcp_boq.pricing.refresh import CatalogRefreshPipeline

logger = structlog.get_logger()

router = APIRouter()


def get_billing_client() -> Generator[CloudBillingCatalogClient, None, None]:
    """Cloud Billing Catalog client, closed after the request."""
    with CloudBillingCatalogClient() as client:
        yield client


@router.get("/pricing")
def list_catalog(
    category: Optional[CatalogCategory] = None,
    region: Optional[str] = None,
    machine_type: Optional[str] = None,
    active_only: bool = True,
    page: int = Query(1, ge=1),
    per_page: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_sync_session)
):
    """
    List catalog entries.

    Returns:
        Paginated catalog entries
    """
    listing = CatalogRepository(db).list_entries(
        category=category.value if category else None,
        region=region,
        machine_type=machine_type,
        active_only=active_only,
        page=page,
        per_page=per_page,
    )
    listing["items"] = [
        CatalogEntry.model_validate(record).model_dump(mode="json")
        for record in listing["items"]
    ]
    return listing


@router.get("/pricing/generations")
def get_active_generations(db: Session = Depends(get_sync_session)):
    """Effective dates that currently have active entries."""
    return {"generations": CatalogLifecycleManager(db).get_active_generations()}


@router.get("/pricing/refresh-logs")
def get_refresh_logs(
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_sync_session)
):
    """Most recent catalog refresh runs."""
    logs = db.execute(
        select(CatalogRefreshLog)
        .order_by(CatalogRefreshLog.started_at.desc(), CatalogRefreshLog.id.desc())
        .limit(limit)
    ).scalars().all()

    return {
        "logs": [
            {
                "id": log.id,
                "effective_date": log.effective_date.isoformat(),
                "status": log.status,
                "source": log.source,
                "records_fetched": log.records_fetched,
                "records_processed": log.records_processed,
                "error_message": log.error_message,
                "started_at": log.started_at.isoformat() if log.started_at else None,
                "completed_at": log.completed_at.isoformat() if log.completed_at else None,
            }
            for log in logs
        ]
    }


@router.post("/refresh-pricing")
def refresh_pricing(
    effective_date: Optional[date] = None,
    db: Session = Depends(get_sync_session),
    client: CloudBillingCatalogClient = Depends(get_billing_client)
):
    """
    Refresh the catalog from the Cloud Billing Catalog API.

    Returns:
        Refresh report (effective_date, total_records, categories, update_timestamp)
    """
    logger.info("pricing_refresh_requested", effective_date=str(effective_date) if effective_date else None)

    report = CatalogRefreshPipeline(
        db,
        settings.engine_config(),
        client=client,
        service_id=settings.compute_engine_service_id,
    ).run(effective_date=effective_date)

    return {"success": True, "message": "Pricing catalog refreshed", **report}
