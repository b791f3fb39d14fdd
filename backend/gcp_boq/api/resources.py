"""
Resource specification API endpoints.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from gcp_boq.db.database import get_sync_session
from gcp_boq.db.repositories import ResourceRepository
from gcp_boq.models.models import ResourceSpecificationRecord

router = APIRouter()


def serialize_resource(record: ResourceSpecificationRecord) -> dict:
    return {
        column.name: getattr(record, column.name)
        for column in ResourceSpecificationRecord.__table__.columns
        if column.name not in ("created_at", "updated_at")
    }


@router.get("/resources")
def list_resources(
    project_id: Optional[List[str]] = Query(None),
    resource_id: Optional[List[str]] = Query(None),
    region: Optional[List[str]] = Query(None),
    pricing_model: Optional[List[str]] = Query(None),
    db: Session = Depends(get_sync_session)
):
    """
    List resource specifications.

    Each filter may be repeated; rows must match every given filter.
    """
    records = ResourceRepository(db).find(
        project_ids=project_id,
        resource_ids=resource_id,
        regions=region,
        pricing_models=pricing_model,
    )
    return {
        "resources": [serialize_resource(r) for r in records],
        "total": len(records),
    }
