"""
Price resolver.

Finds the unit prices a resource specification is billed at. Every
component follows the same two-tier policy: the best active catalog entry,
else a fixed fallback from the engine configuration. Resolution never fails
for lack of a price.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gcp_boq.config import EngineConfig
from gcp_boq.db.repositories import CatalogRepository
from gcp_boq.models.models import CatalogEntryRecord
from gcp_boq.models.schemas import PricingModel, ResourceSpecification
from gcp_boq.pricing.description_parser import (
    USAGE_COMMITTED,
    USAGE_ON_DEMAND,
    USAGE_PREEMPTIBLE,
)

logger = structlog.get_logger()


SOURCE_CATALOG = "catalog"
SOURCE_FALLBACK = "fallback"
SOURCE_FIXED = "fixed"

USAGE_TYPES: Dict[str, str] = {
    PricingModel.ON_DEMAND.value: USAGE_ON_DEMAND,
    PricingModel.SPOT.value: USAGE_PREEMPTIBLE,
    PricingModel.PREEMPTIBLE.value: USAGE_PREEMPTIBLE,
    PricingModel.CUD_1_YEAR.value: USAGE_COMMITTED,
    PricingModel.CUD_3_YEAR.value: USAGE_COMMITTED,
}


def usage_type_for(pricing_model: str) -> str:
    """Catalog usage type a pricing model is billed under."""
    return USAGE_TYPES.get(pricing_model, USAGE_ON_DEMAND)


@dataclass(frozen=True)
class ComponentPrice:
    """One resolved unit price and where it came from."""
    price: Decimal
    source: str
    sku_id: Optional[str] = None
    effective_date: Optional[date] = None

    @classmethod
    def from_entry(cls, entry: CatalogEntryRecord) -> "ComponentPrice":
        return cls(
            price=Decimal(entry.price_per_unit),
            source=SOURCE_CATALOG,
            sku_id=entry.sku_id,
            effective_date=entry.effective_date,
        )


@dataclass(frozen=True)
class PricingComponents:
    """Unit prices for every cost component of one resource."""
    compute: ComponentPrice  # per hour
    storage: ComponentPrice  # per GB-month
    gpu: ComponentPrice  # per GPU-hour
    network: ComponentPrice  # per hour, external IP only
    usage_type: str = USAGE_ON_DEMAND
    additional_storage: Dict[str, ComponentPrice] = field(default_factory=dict)

    @property
    def pricing_date(self) -> Optional[date]:
        """Generation date of the compute price, when it came from the catalog."""
        return self.compute.effective_date

    def sources(self) -> Dict[str, Dict[str, Optional[str]]]:
        return {
            name: {"source": component.source, "sku_id": component.sku_id}
            for name, component in (
                ("compute", self.compute),
                ("storage", self.storage),
                ("gpu", self.gpu),
                ("network", self.network),
            )
        }


class PriceResolver:
    """
    Resolves catalog prices for resource specifications.

    Lookups read whatever entries are active at the time of the query; a
    store error while looking up one component degrades that component to
    its fallback price.
    """

    def __init__(self, db: Session, config: Optional[EngineConfig] = None):
        self.db = db
        self.config = config or EngineConfig()
        self.catalog = CatalogRepository(db)

    def _lookup(self, component: str, finder, *args) -> Optional[CatalogEntryRecord]:
        try:
            return finder(*args)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("catalog_lookup_failed", component=component, error=str(e))
            return None

    def estimate_compute_price(self, spec: ResourceSpecification) -> Decimal:
        """Heuristic per-hour estimate from vCPU and memory reference rates."""
        return (
            Decimal(spec.vcpu_count) * self.config.base_vcpu_price
            + Decimal(str(spec.memory_gb)) * self.config.base_memory_price
        )

    def resolve_compute(self, spec: ResourceSpecification, usage_type: str) -> ComponentPrice:
        entry = self._lookup(
            "compute",
            self.catalog.find_best_compute,
            spec.machine_type,
            spec.machine_family,
            spec.region,
            usage_type,
        )
        if entry is not None:
            return ComponentPrice.from_entry(entry)

        logger.info(
            "compute_price_fallback",
            resource_id=spec.resource_id,
            machine_type=spec.machine_type,
            region=spec.region,
            usage_type=usage_type,
        )
        return ComponentPrice(price=self.estimate_compute_price(spec), source=SOURCE_FALLBACK)

    def resolve_storage(self, disk_type: Optional[str], region: str) -> ComponentPrice:
        """Per GB-month price for a disk type."""
        disk_type = disk_type or self.config.default_disk_type
        entry = self._lookup("storage", self.catalog.find_best_storage, disk_type, region)
        if entry is not None:
            return ComponentPrice.from_entry(entry)

        table = self.config.storage_fallback_prices
        price = table.get(disk_type, table[self.config.default_disk_type])
        return ComponentPrice(price=price, source=SOURCE_FALLBACK)

    def resolve_gpu(self, gpu_type: Optional[str], region: str) -> ComponentPrice:
        """Per GPU-hour price for a GPU type."""
        if gpu_type:
            entry = self._lookup("gpu", self.catalog.find_best_gpu, gpu_type, region)
            if entry is not None:
                return ComponentPrice.from_entry(entry)

        price = self.config.gpu_fallback_prices.get(gpu_type or "", self.config.default_gpu_price)
        return ComponentPrice(price=price, source=SOURCE_FALLBACK)

    def resolve(self, spec: ResourceSpecification) -> PricingComponents:
        """
        Resolve every price component of a resource.

        Args:
            spec: Validated resource specification

        Returns:
            PricingComponents; the GPU component is zero when no GPU is attached
        """
        usage_type = usage_type_for(spec.pricing_model)

        if spec.gpu_count > 0:
            gpu = self.resolve_gpu(spec.gpu_type, spec.region)
        else:
            gpu = ComponentPrice(price=Decimal(0), source=SOURCE_FIXED)

        additional = {}
        for disk in spec.additional_disks:
            if disk.disk_type not in additional:
                additional[disk.disk_type] = self.resolve_storage(disk.disk_type, spec.region)

        return PricingComponents(
            compute=self.resolve_compute(spec, usage_type),
            storage=self.resolve_storage(spec.disk_type, spec.region),
            gpu=gpu,
            network=ComponentPrice(price=self.config.external_ip_hourly_price, source=SOURCE_FIXED),
            usage_type=usage_type,
            additional_storage=additional,
        )
