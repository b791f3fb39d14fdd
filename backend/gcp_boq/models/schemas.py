"""
Pydantic schemas for resource specifications, raw price-list entries and
normalized catalog entries.
"""
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gcp_boq.exceptions import InvalidResourceSpecificationError


NANOS_PER_UNIT = Decimal(1_000_000_000)


class PricingModel(str, Enum):
    ON_DEMAND = "on-demand"
    CUD_1_YEAR = "cud-1-year"
    CUD_3_YEAR = "cud-3-year"
    SPOT = "spot"
    PREEMPTIBLE = "preemptible"


class UsagePattern(str, Enum):
    CONTINUOUS = "continuous"
    INTERMITTENT = "intermittent"
    SCHEDULED = "scheduled"


class CatalogCategory(str, Enum):
    COMPUTE = "compute"
    STORAGE = "storage"
    GPU = "gpu"
    NETWORK = "network"


# ============================================================================
# RESOURCE SPECIFICATIONS
# ============================================================================

class AdditionalDisk(BaseModel):
    disk_type: str
    size_gb: int = Field(..., ge=0)
    description: Optional[str] = None


class ResourceSpecification(BaseModel):
    """A compute resource to be priced. Never mutated by the engine."""

    model_config = ConfigDict(frozen=True, extra="ignore", use_enum_values=True)

    project_id: str = Field(..., min_length=1)
    resource_id: str = Field(..., min_length=1)
    instance_name: Optional[str] = None

    machine_type: str = Field(..., min_length=1)
    vcpu_count: int = Field(..., ge=0)
    memory_gb: float = Field(..., ge=0)

    disk_type: str = "pd-standard"
    disk_size_gb: int = Field(default=0, ge=0)
    additional_disks: List[AdditionalDisk] = Field(default_factory=list)

    region: str = Field(..., min_length=1)
    zone: Optional[str] = None

    usage_duration_hours: float = Field(..., ge=0)
    usage_pattern: UsagePattern = UsagePattern.CONTINUOUS
    pricing_model: PricingModel = PricingModel.ON_DEMAND
    commitment_type: Optional[str] = None

    gpu_type: Optional[str] = None
    gpu_count: int = Field(default=0, ge=0)

    network_tier: Optional[str] = None
    external_ip: bool = False

    cost_center: Optional[str] = None
    environment: Optional[str] = None
    team: Optional[str] = None

    @property
    def machine_family(self) -> str:
        """Token before the first dash of the machine type (e.g. 'n1')."""
        return self.machine_type.split("-")[0]

    @classmethod
    def from_record(cls, record: Any) -> "ResourceSpecification":
        """
        Build a specification from a stored row or a plain mapping.

        NULL columns are dropped so schema defaults apply; anything required
        that is still missing raises InvalidResourceSpecificationError.
        """
        if isinstance(record, dict):
            data = dict(record)
        else:
            data = {c.name: getattr(record, c.name) for c in record.__table__.columns}
        data = {k: v for k, v in data.items() if v is not None}

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise InvalidResourceSpecificationError(data.get("resource_id"), problems) from e


# ============================================================================
# RAW PRICE-LIST ENTRIES (Cloud Billing Catalog shape)
# ============================================================================

class UnitPrice(BaseModel):
    """Fixed-point money: whole units plus nanos (10^-9 units)."""

    model_config = ConfigDict(populate_by_name=True)

    units: int = 0
    nanos: int = 0
    currency_code: str = Field(default="USD", alias="currencyCode")

    def to_decimal(self) -> Decimal:
        """Exact decimal value of units + nanos / 1e9."""
        return Decimal(self.units) + Decimal(self.nanos) / NANOS_PER_UNIT


class RawTieredRate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_usage_amount: Decimal = Field(default=Decimal(0), alias="startUsageAmount")
    unit_price: UnitPrice = Field(default_factory=UnitPrice, alias="unitPrice")


class RawPriceEntry(BaseModel):
    """One SKU record from the pricing feed."""

    model_config = ConfigDict(populate_by_name=True)

    sku_id: str = Field(..., alias="skuId")
    description: str = ""
    service_regions: List[str] = Field(default_factory=list, alias="serviceRegions")
    usage_unit: Optional[str] = Field(default=None, alias="usageUnit")
    tiered_rates: List[RawTieredRate] = Field(default_factory=list, alias="tieredRates")
    resource_family: Optional[str] = Field(default=None, alias="resourceFamily")
    resource_group: Optional[str] = Field(default=None, alias="resourceGroup")

    @classmethod
    def from_billing_sku(cls, sku: Dict[str, Any]) -> "RawPriceEntry":
        """
        Flatten a Cloud Billing Catalog SKU.

        Only the first pricingInfo entry is used; it is the current price.
        """
        pricing_info = sku.get("pricingInfo") or [{}]
        expression = pricing_info[0].get("pricingExpression") or {}
        category = sku.get("category") or {}

        return cls(
            sku_id=sku.get("skuId", ""),
            description=sku.get("description", ""),
            service_regions=sku.get("serviceRegions") or [],
            usage_unit=expression.get("usageUnit"),
            tiered_rates=expression.get("tieredRates") or [],
            resource_family=category.get("resourceFamily"),
            resource_group=category.get("resourceGroup"),
        )


# ============================================================================
# NORMALIZED CATALOG ENTRIES
# ============================================================================

class TieredRate(BaseModel):
    start_usage_amount: Decimal
    price_per_unit: Decimal
    currency_code: str = "USD"


class CatalogEntry(BaseModel):
    """A normalized, priced catalog unit."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    sku_id: str
    sku_name: Optional[str] = None
    service_name: str = "Compute Engine"
    service_id: Optional[str] = None

    category: CatalogCategory = CatalogCategory.COMPUTE
    resource_family: Optional[str] = None
    resource_group: Optional[str] = None
    usage_type: Optional[str] = None

    region: Optional[str] = None
    currency_code: str = "USD"
    pricing_unit: Optional[str] = None
    price_per_unit: Decimal
    tiered_rates: List[TieredRate] = Field(default_factory=list)

    machine_family: Optional[str] = None
    machine_type: Optional[str] = None
    vcpu_count: Optional[int] = None
    memory_gb: Optional[float] = None
    disk_type: Optional[str] = None
    gpu_type: Optional[str] = None
    commitment_term: Optional[str] = None
    commitment_type: Optional[str] = None
    discount_percent: int = 0
    network_tier: Optional[str] = None

    effective_date: Optional[date] = None
    is_active: bool = True
    pricing_source: str = "cloud-billing-api"
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tiered_rates", "tags", mode="before")
    @classmethod
    def null_list_to_empty(cls, v):
        """Stored rows keep NULL for empty JSON lists."""
        return [] if v is None else v

    def to_record_values(self) -> Dict[str, Any]:
        """Column values for a catalog row; tiers are stored as JSON."""
        values = self.model_dump(exclude={"tiered_rates"})
        values["tiered_rates"] = (
            [rate.model_dump(mode="json") for rate in self.tiered_rates]
            if self.tiered_rates else None
        )
        return values
