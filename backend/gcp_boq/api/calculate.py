"""
BoQ calculation API endpoint.
"""
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from gcp_boq.config import settings
from gcp_boq.db.database import get_sync_session
from gcp_boq.engine.orchestrator import BoQOrchestrator

logger = structlog.get_logger()

router = APIRouter()


class CalculationRequest(BaseModel):
    """Resource filters; an empty list does not restrict the selection."""

    model_config = ConfigDict(populate_by_name=True)

    project_ids: List[str] = Field(default_factory=list, alias="projectIds")
    resource_ids: List[str] = Field(default_factory=list, alias="resourceIds")
    regions: List[str] = Field(default_factory=list)
    pricing_models: List[str] = Field(default_factory=list, alias="pricingModels")
    requested_by: Optional[str] = Field(default=None, alias="requestedBy")


@router.post("/calculate")
def calculate_boq(
    request: CalculationRequest,
    db: Session = Depends(get_sync_session)
):
    """
    Calculate a Bill of Quantities.

    Args:
        request: Resource filters and requester
        db: Database session

    Returns:
        success, boq_id, resources_processed, summary, results, timestamp
    """
    logger.info(
        "boq_calculation_requested",
        project_ids=request.project_ids,
        resource_ids=request.resource_ids,
        requested_by=request.requested_by,
    )

    run = BoQOrchestrator(db, settings.engine_config()).calculate(
        project_ids=request.project_ids,
        resource_ids=request.resource_ids,
        regions=request.regions,
        pricing_models=request.pricing_models,
        requested_by=request.requested_by,
    )
    return run.to_response()
