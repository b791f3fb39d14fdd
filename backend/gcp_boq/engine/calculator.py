"""
Cost calculator.
Prices one resource specification into a BoQ line item.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog

from gcp_boq.config import EngineConfig
from gcp_boq.engine.discounts import DiscountResult, compute_discount
from gcp_boq.engine.resolver import PriceResolver, PricingComponents
from gcp_boq.models.schemas import ResourceSpecification

logger = structlog.get_logger()

ZERO = Decimal(0)


@dataclass(frozen=True)
class BoQLineItem:
    """One priced, discounted resource of a calculation run."""
    boq_id: str
    calculation_timestamp: datetime
    requested_by: Optional[str]
    resource: ResourceSpecification
    pricing: PricingComponents
    discount: DiscountResult

    compute_cost: Decimal
    storage_cost: Decimal
    gpu_cost: Decimal
    network_cost: Decimal

    subtotal: Decimal
    total_discount: Decimal
    total_cost: Decimal

    additional_storage_costs: List[Dict[str, Any]] = field(default_factory=list)
    pricing_date: Optional[date] = None
    calculation_version: str = "1.0"

    @property
    def resource_id(self) -> str:
        return self.resource.resource_id

    @property
    def project_id(self) -> str:
        return self.resource.project_id

    @property
    def region(self) -> str:
        return self.resource.region

    def _resource_values(self) -> Dict[str, Any]:
        spec = self.resource
        return {
            "resource_id": spec.resource_id,
            "project_id": spec.project_id,
            "instance_name": spec.instance_name,
            "machine_type": spec.machine_type,
            "vcpu_count": spec.vcpu_count,
            "memory_gb": spec.memory_gb,
            "disk_type": spec.disk_type,
            "disk_size_gb": spec.disk_size_gb,
            "region": spec.region,
            "pricing_model": spec.pricing_model,
            "usage_duration_hours": spec.usage_duration_hours,
            "usage_pattern": spec.usage_pattern,
            "cost_center": spec.cost_center,
            "environment": spec.environment,
            "team": spec.team,
        }

    def to_record_values(self) -> Dict[str, Any]:
        """Column values for a boq_results row."""
        values = self._resource_values()
        values.update(
            boq_id=self.boq_id,
            calculation_timestamp=self.calculation_timestamp,
            requested_by=self.requested_by,
            compute_cost_usd=self.compute_cost,
            storage_cost_usd=self.storage_cost,
            gpu_cost_usd=self.gpu_cost,
            network_cost_usd=self.network_cost,
            compute_price_per_hour=self.pricing.compute.price,
            storage_price_per_gb_month=self.pricing.storage.price,
            gpu_price_per_hour=self.pricing.gpu.price,
            network_price_per_hour=self.pricing.network.price,
            pricing_sources=self.pricing.sources(),
            sustained_use_discount_percent=self.discount.sustained_use_percent,
            committed_use_discount_percent=self.discount.committed_use_percent,
            spot_discount_percent=self.discount.spot_percent,
            sustained_use_discount_usd=self.discount.sustained_use_amount,
            committed_use_discount_usd=self.discount.committed_use_amount,
            spot_discount_usd=self.discount.spot_amount,
            subtotal_usd=self.subtotal,
            total_discount_usd=self.total_discount,
            total_cost_usd=self.total_cost,
            additional_storage_costs=self.additional_storage_costs or None,
            pricing_date=self.pricing_date,
            calculation_version=self.calculation_version,
        )
        return values

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation for API responses."""
        values = self._resource_values()
        values.update(
            boq_id=self.boq_id,
            calculation_timestamp=self.calculation_timestamp.isoformat(),
            requested_by=self.requested_by,
            compute_cost_usd=float(self.compute_cost),
            storage_cost_usd=float(self.storage_cost),
            gpu_cost_usd=float(self.gpu_cost),
            network_cost_usd=float(self.network_cost),
            compute_price_per_hour=float(self.pricing.compute.price),
            storage_price_per_gb_month=float(self.pricing.storage.price),
            gpu_price_per_hour=float(self.pricing.gpu.price),
            network_price_per_hour=float(self.pricing.network.price),
            pricing_sources=self.pricing.sources(),
            sustained_use_discount_percent=self.discount.sustained_use_percent,
            committed_use_discount_percent=self.discount.committed_use_percent,
            spot_discount_percent=self.discount.spot_percent,
            subtotal_usd=float(self.subtotal),
            total_discount_usd=float(self.total_discount),
            total_cost_usd=float(self.total_cost),
            additional_storage_costs=self.additional_storage_costs,
            pricing_date=self.pricing_date.isoformat() if self.pricing_date else None,
            calculation_version=self.calculation_version,
        )
        return values


class CostCalculator:
    """
    Calculates costs for resources.
    """

    def __init__(self, resolver: PriceResolver, config: Optional[EngineConfig] = None):
        self.resolver = resolver
        self.config = config or resolver.config

    def _months(self, spec: ResourceSpecification) -> Decimal:
        return Decimal(str(spec.usage_duration_hours)) / self.config.hours_per_month

    def _additional_storage(
        self,
        spec: ResourceSpecification,
        pricing: PricingComponents,
    ) -> List[Dict[str, Any]]:
        """Per-disk breakdown of additional disks. Reported only, not billed into the subtotal."""
        months = self._months(spec)
        costs = []
        for disk in spec.additional_disks:
            component = pricing.additional_storage.get(disk.disk_type)
            if component is None:
                component = self.resolver.resolve_storage(disk.disk_type, spec.region)
            cost = component.price * Decimal(disk.size_gb) * months
            costs.append({
                "disk_type": disk.disk_type,
                "size_gb": disk.size_gb,
                "description": disk.description,
                "price_per_gb_month": float(component.price),
                "cost_usd": float(cost),
                "source": component.source,
            })
        return costs

    def calculate(
        self,
        spec: ResourceSpecification,
        boq_id: str,
        requested_by: Optional[str] = None,
        calculated_at: Optional[datetime] = None,
    ) -> BoQLineItem:
        """
        Price a single resource.

        Args:
            spec: Validated resource specification
            boq_id: Run identifier shared by every line item of the run
            requested_by: Requester recorded on the line item
            calculated_at: Run timestamp (defaults to now, UTC)

        Returns:
            BoQLineItem with total cost floored at zero
        """
        calculated_at = calculated_at or datetime.utcnow()
        pricing = self.resolver.resolve(spec)

        hours = Decimal(str(spec.usage_duration_hours))
        months = self._months(spec)

        compute_cost = pricing.compute.price * hours
        gpu_cost = pricing.gpu.price * Decimal(spec.gpu_count) * hours if spec.gpu_count > 0 else ZERO
        network_cost = pricing.network.price * hours if spec.external_ip else ZERO

        storage_cost = pricing.storage.price * Decimal(spec.disk_size_gb) * months
        additional = self._additional_storage(spec, pricing)

        discount = compute_discount(spec, compute_cost + gpu_cost, self.config)

        subtotal = compute_cost + storage_cost + gpu_cost + network_cost
        total_discount = discount.total_amount
        total_cost = max(ZERO, subtotal - total_discount)

        logger.debug(
            "resource_priced",
            boq_id=boq_id,
            resource_id=spec.resource_id,
            subtotal=float(subtotal),
            total_cost=float(total_cost),
        )

        return BoQLineItem(
            boq_id=boq_id,
            calculation_timestamp=calculated_at,
            requested_by=requested_by,
            resource=spec,
            pricing=pricing,
            discount=discount,
            compute_cost=compute_cost,
            storage_cost=storage_cost,
            gpu_cost=gpu_cost,
            network_cost=network_cost,
            subtotal=subtotal,
            total_discount=total_discount,
            total_cost=total_cost,
            additional_storage_costs=additional,
            pricing_date=pricing.pricing_date or calculated_at.date(),
            calculation_version=self.config.calculation_version,
        )
