"""
Pricing catalog normalization module.
Converts raw Cloud Billing SKUs into normalized catalog entries.
"""
from datetime import date
from typing import Iterable, List, Optional

import structlog

from gcp_boq.config import EngineConfig
from gcp_boq.models.schemas import CatalogEntry, RawPriceEntry, TieredRate
from gcp_boq.pricing.description_parser import parse

logger = structlog.get_logger()


RELEVANT_KEYWORDS = (
    "instance", "vm", "virtual machine", "disk", "storage", "persistent",
    "gpu", "nvidia", "tesla", "ip address", "network", "memory", "cpu", "core",
)

EXCLUDED_KEYWORDS = (
    "license", "support", "api", "monitoring", "logging", "backup",
    "snapshot transfer",
)

GLOBAL_REGIONS = {"", "global", "any"}

_RESOURCE_FAMILIES = {
    "compute": "Compute",
    "storage": "Storage",
    "gpu": "GPU",
    "network": "Network",
}


def is_relevant_sku(description: str) -> bool:
    """Keep compute, disk, GPU and network SKUs; drop licences and add-on services."""
    desc = (description or "").lower()
    if any(keyword in desc for keyword in EXCLUDED_KEYWORDS):
        return False
    return any(keyword in desc for keyword in RELEVANT_KEYWORDS)


def _normalize_region(service_regions: List[str]) -> Optional[str]:
    if not service_regions:
        return None
    region = service_regions[0]
    if region.lower() in GLOBAL_REGIONS:
        return None
    return region


class CatalogNormalizer:
    """
    Normalizes raw price-list entries into catalog entries.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        service_name: str = "Compute Engine",
        service_id: Optional[str] = None,
    ):
        self.config = config or EngineConfig()
        self.service_name = service_name
        self.service_id = service_id

    def normalize(
        self,
        raw: RawPriceEntry,
        effective_date: Optional[date] = None
    ) -> Optional[CatalogEntry]:
        """
        Normalize a single raw entry.

        Args:
            raw: Raw SKU record
            effective_date: Catalog generation date to stamp on the entry

        Returns:
            Catalog entry, or None when the SKU has no price tier or its
            headline price is zero (free-tier noise)
        """
        if not raw.tiered_rates:
            logger.debug("sku_dropped_no_tiers", sku_id=raw.sku_id)
            return None

        tiers = sorted(raw.tiered_rates, key=lambda rate: rate.start_usage_amount)
        headline = tiers[0].unit_price
        price_per_unit = headline.to_decimal()

        if price_per_unit == 0:
            logger.debug("sku_dropped_zero_price", sku_id=raw.sku_id)
            return None

        attrs = parse(raw.description, self.config)

        tiered_rates = []
        if len(tiers) > 1:
            tiered_rates = [
                TieredRate(
                    start_usage_amount=rate.start_usage_amount,
                    price_per_unit=rate.unit_price.to_decimal(),
                    currency_code=rate.unit_price.currency_code,
                )
                for rate in tiers
            ]

        return CatalogEntry(
            sku_id=raw.sku_id,
            sku_name=raw.description,
            service_name=self.service_name,
            service_id=self.service_id,
            category=attrs.category,
            resource_family=raw.resource_family or _RESOURCE_FAMILIES[attrs.category],
            resource_group=attrs.resource_group or raw.resource_group,
            usage_type=attrs.usage_type,
            region=_normalize_region(raw.service_regions),
            currency_code=headline.currency_code,
            pricing_unit=raw.usage_unit,
            price_per_unit=price_per_unit,
            tiered_rates=tiered_rates,
            machine_family=attrs.machine_family,
            machine_type=attrs.machine_type,
            vcpu_count=attrs.vcpu_count,
            memory_gb=attrs.memory_gb,
            disk_type=attrs.disk_type,
            gpu_type=attrs.gpu_type,
            commitment_term=attrs.commitment_term,
            commitment_type=attrs.commitment_type,
            discount_percent=attrs.discount_percent,
            network_tier=attrs.network_tier,
            effective_date=effective_date,
            description=raw.description,
            tags=list(attrs.tags),
        )

    def normalize_all(
        self,
        raws: Iterable[RawPriceEntry],
        effective_date: Optional[date] = None
    ) -> List[CatalogEntry]:
        """
        Filter a feed down to relevant SKUs and normalize them.

        Args:
            raws: Raw SKU records
            effective_date: Catalog generation date

        Returns:
            Normalized entries (irrelevant and unpriced SKUs removed)
        """
        entries = []
        skipped_irrelevant = 0
        dropped = 0

        for raw in raws:
            if not is_relevant_sku(raw.description):
                skipped_irrelevant += 1
                continue

            entry = self.normalize(raw, effective_date)
            if entry is None:
                dropped += 1
                continue
            entries.append(entry)

        logger.info(
            "catalog_normalized",
            entries=len(entries),
            skipped_irrelevant=skipped_irrelevant,
            dropped_unpriced=dropped,
        )
        return entries
