"""
BoQ calculation orchestrator.

Fetches the requested resource specifications, prices each one on its own,
persists the successful line items under one run id and summarizes them.
One malformed specification never blocks the rest of the batch.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gcp_boq.config import EngineConfig
from gcp_boq.db.repositories import ResourceRepository, ResultRepository
from gcp_boq.engine.aggregator import BoQSummary, CostAggregator
from gcp_boq.engine.calculator import BoQLineItem, CostCalculator
from gcp_boq.engine.resolver import PriceResolver
from gcp_boq.exceptions import NoMatchingResourcesError, ResultPersistenceError
from gcp_boq.models.schemas import ResourceSpecification

logger = structlog.get_logger()


@dataclass
class BoQRun:
    """Outcome of one calculation run."""
    boq_id: str
    calculation_timestamp: datetime
    requested_by: Optional[str]
    line_items: List[BoQLineItem]
    summary: BoQSummary
    skipped: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def resources_processed(self) -> int:
        return len(self.line_items)

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": "BoQ calculation completed successfully",
            "boq_id": self.boq_id,
            "resources_processed": self.resources_processed,
            "summary": self.summary.to_dict(),
            "results": [item.to_dict() for item in self.line_items],
            "skipped": self.skipped,
            "timestamp": datetime.utcnow().isoformat(),
        }


class BoQOrchestrator:
    """Runs BoQ calculations against the resource, catalog and result stores."""

    def __init__(self, db: Session, config: Optional[EngineConfig] = None):
        self.db = db
        self.config = config or EngineConfig()
        self.resources = ResourceRepository(db)
        self.results = ResultRepository(db)
        self.calculator = CostCalculator(PriceResolver(db, self.config), self.config)

    def calculate(
        self,
        project_ids: Optional[List[str]] = None,
        resource_ids: Optional[List[str]] = None,
        regions: Optional[List[str]] = None,
        pricing_models: Optional[List[str]] = None,
        requested_by: Optional[str] = None,
    ) -> BoQRun:
        """
        Calculate a BoQ for every specification matching the filters.

        Empty or missing filters do not restrict the selection.

        Returns:
            BoQRun with line items, summary and skipped resources

        Raises:
            NoMatchingResourcesError: If no specification matches
            ResultPersistenceError: If the line items cannot be saved
        """
        filters = {
            "project_ids": project_ids or [],
            "resource_ids": resource_ids or [],
            "regions": regions or [],
            "pricing_models": pricing_models or [],
        }
        records = self.resources.find(**filters)
        if not records:
            raise NoMatchingResourcesError(filters)

        boq_id = str(uuid.uuid4())
        calculated_at = datetime.utcnow()
        log = logger.bind(boq_id=boq_id)
        log.info("boq_calculation_started", resources=len(records), requested_by=requested_by)

        line_items: List[BoQLineItem] = []
        skipped: List[Dict[str, Any]] = []

        for record in records:
            try:
                spec = ResourceSpecification.from_record(record)
                line_items.append(
                    self.calculator.calculate(spec, boq_id, requested_by, calculated_at)
                )
            except Exception as e:
                log.error(
                    "resource_calculation_failed",
                    resource_id=record.resource_id,
                    project_id=record.project_id,
                    error=str(e),
                )
                skipped.append({"resource_id": record.resource_id, "error": str(e)})

        self._persist(boq_id, line_items)

        summary = CostAggregator([item.to_record_values() for item in line_items]).aggregate_all()

        log.info(
            "boq_calculation_completed",
            resources_processed=len(line_items),
            skipped=len(skipped),
            total_cost=float(summary.total_cost),
        )

        return BoQRun(
            boq_id=boq_id,
            calculation_timestamp=calculated_at,
            requested_by=requested_by,
            line_items=line_items,
            summary=summary,
            skipped=skipped,
        )

    def _persist(self, boq_id: str, line_items: List[BoQLineItem]) -> None:
        if not line_items:
            return
        try:
            self.results.save_line_items(line_items, batch_size=self.config.insert_batch_size)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("boq_results_save_failed", boq_id=boq_id, count=len(line_items), error=str(e))
            raise ResultPersistenceError(boq_id, len(line_items), str(e)) from e
