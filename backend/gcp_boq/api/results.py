"""
Results API endpoints.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from gcp_boq.db.database import get_sync_session
from gcp_boq.db.repositories import ResultRepository
from gcp_boq.engine.aggregator import summarize_records
from gcp_boq.models.models import BoQResultRecord

router = APIRouter()


def _money(value) -> Optional[float]:
    return float(value) if value is not None else None


def serialize_result(record: BoQResultRecord) -> Dict[str, Any]:
    return {
        "boq_id": record.boq_id,
        "calculation_timestamp": record.calculation_timestamp.isoformat(),
        "requested_by": record.requested_by,
        "resource_id": record.resource_id,
        "project_id": record.project_id,
        "instance_name": record.instance_name,
        "machine_type": record.machine_type,
        "vcpu_count": record.vcpu_count,
        "memory_gb": record.memory_gb,
        "disk_type": record.disk_type,
        "disk_size_gb": record.disk_size_gb,
        "region": record.region,
        "pricing_model": record.pricing_model,
        "usage_duration_hours": record.usage_duration_hours,
        "usage_pattern": record.usage_pattern,
        "compute_cost_usd": _money(record.compute_cost_usd),
        "storage_cost_usd": _money(record.storage_cost_usd),
        "gpu_cost_usd": _money(record.gpu_cost_usd),
        "network_cost_usd": _money(record.network_cost_usd),
        "compute_price_per_hour": _money(record.compute_price_per_hour),
        "storage_price_per_gb_month": _money(record.storage_price_per_gb_month),
        "gpu_price_per_hour": _money(record.gpu_price_per_hour),
        "network_price_per_hour": _money(record.network_price_per_hour),
        "pricing_sources": record.pricing_sources,
        "sustained_use_discount_percent": record.sustained_use_discount_percent,
        "committed_use_discount_percent": record.committed_use_discount_percent,
        "spot_discount_percent": record.spot_discount_percent,
        "subtotal_usd": _money(record.subtotal_usd),
        "total_discount_usd": _money(record.total_discount_usd),
        "total_cost_usd": _money(record.total_cost_usd),
        "additional_storage_costs": record.additional_storage_costs or [],
        "pricing_date": record.pricing_date.isoformat() if record.pricing_date else None,
        "calculation_version": record.calculation_version,
        "cost_center": record.cost_center,
        "environment": record.environment,
        "team": record.team,
    }


@router.get("/results")
def list_results(
    boq_id: Optional[str] = None,
    project_id: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_sync_session)
):
    """
    Query stored line items by run, project and/or calculation time range.

    Returns:
        Paginated line items
    """
    repo = ResultRepository(db)
    records = repo.find(boq_id, project_id, since, until, limit=limit, offset=offset)

    return {
        "results": [serialize_result(r) for r in records],
        "total": repo.count(boq_id, project_id, since, until),
        "limit": limit,
        "offset": offset,
    }


@router.get("/results/{boq_id}")
def get_boq(
    boq_id: str,
    db: Session = Depends(get_sync_session)
):
    """
    Get every line item of one run with its summary.

    Raises:
        HTTPException: 404 if the run does not exist
    """
    repo = ResultRepository(db)
    records = repo.find(boq_id=boq_id, limit=repo.count(boq_id=boq_id) or 1)

    if not records:
        raise HTTPException(status_code=404, detail="BoQ not found")

    return {
        "boq_id": boq_id,
        "summary": summarize_records(records).to_dict(),
        "results": [serialize_result(r) for r in records],
    }


@router.get("/boq-history")
def get_boq_history(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_sync_session)
):
    """One entry per calculation run within the last ``days`` days."""
    return {"history": ResultRepository(db).history(days)}
