"""
SQLAlchemy models for resource specifications, the pricing catalog and BoQ results.
"""
from sqlalchemy import (
    Boolean, Column, Integer, String, Text, Numeric, Float, Date, DateTime,
    CheckConstraint, Index, UniqueConstraint, JSON
)
from sqlalchemy.sql import func

from gcp_boq.db.database import Base


# ============================================================================
# RESOURCE SPECIFICATIONS
# ============================================================================

class ResourceSpecificationRecord(Base):
    """Compute resources submitted for costing by upstream intake."""
    __tablename__ = "resource_specifications"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String(100), nullable=False)
    resource_id = Column(String(100), nullable=False)
    instance_name = Column(String(255))

    # Intake is not trusted to be complete; validation happens per resource
    machine_type = Column(String(100))
    vcpu_count = Column(Integer)
    memory_gb = Column(Float)

    disk_type = Column(String(50))
    disk_size_gb = Column(Integer)
    additional_disks = Column(JSON)

    region = Column(String(50))
    zone = Column(String(50))

    usage_duration_hours = Column(Float)
    usage_pattern = Column(String(20), default="continuous")
    pricing_model = Column(String(20), default="on-demand")
    commitment_type = Column(String(50))

    gpu_type = Column(String(100))
    gpu_count = Column(Integer, default=0)

    network_tier = Column(String(20), default="standard")
    external_ip = Column(Boolean, default=False)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
    created_by = Column(String(255))
    tags = Column(JSON)
    description = Column(Text)

    cost_center = Column(String(100))
    environment = Column(String(50))
    team = Column(String(100))

    __table_args__ = (
        UniqueConstraint("project_id", "resource_id", name="uq_project_resource"),
        Index("idx_resource_specs_project", "project_id"),
        Index("idx_resource_specs_region", "region"),
        Index("idx_resource_specs_pricing_model", "pricing_model"),
    )


# ============================================================================
# PRICING CATALOG
# ============================================================================

class CatalogEntryRecord(Base):
    """Normalized, priced SKU. One row per SKU per catalog generation."""
    __tablename__ = "pricing_catalog"

    id = Column(Integer, primary_key=True, index=True)
    sku_id = Column(String(100), nullable=False)
    sku_name = Column(Text)
    service_name = Column(String(100), nullable=False, default="Compute Engine")
    service_id = Column(String(50))

    category = Column(String(20), nullable=False)
    resource_family = Column(String(50))
    resource_group = Column(String(50))
    usage_type = Column(String(20))

    # NULL region means the price applies globally
    region = Column(String(50))

    currency_code = Column(String(10), nullable=False, default="USD")
    pricing_unit = Column(String(50))
    price_per_unit = Column(Numeric(20, 10), nullable=False)
    tiered_rates = Column(JSON)

    machine_family = Column(String(20))
    machine_type = Column(String(100))
    vcpu_count = Column(Integer)
    memory_gb = Column(Float)
    disk_type = Column(String(50))
    gpu_type = Column(String(100))
    commitment_term = Column(String(20))
    commitment_type = Column(String(20))
    discount_percent = Column(Integer, default=0)
    network_tier = Column(String(20))

    effective_date = Column(Date, nullable=False)
    last_updated = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
    pricing_source = Column(String(50), default="cloud-billing-api")
    is_active = Column(Boolean, nullable=False, default=True)

    description = Column(Text)
    tags = Column(JSON)

    __table_args__ = (
        UniqueConstraint("sku_id", "effective_date", name="uq_catalog_sku_effective_date"),
        Index("idx_pricing_catalog_lookup", "category", "is_active", "region"),
        Index("idx_pricing_catalog_machine_type", "machine_type"),
        Index("idx_pricing_catalog_machine_family", "machine_family"),
        Index("idx_pricing_catalog_effective_date", "effective_date"),
    )


class CatalogRefreshLog(Base):
    """Catalog refresh audit log."""
    __tablename__ = "catalog_refresh_logs"

    id = Column(Integer, primary_key=True, index=True)
    effective_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False)
    source = Column(String(100))
    records_fetched = Column(Integer)
    records_processed = Column(Integer)
    error_message = Column(Text)
    report = Column(JSON)
    started_at = Column(DateTime, nullable=False, server_default=func.now())
    completed_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint("status IN ('started', 'completed', 'failed')", name="check_refresh_status"),
        Index("idx_catalog_refresh_logs_started", "started_at"),
    )


# ============================================================================
# BOQ RESULTS
# ============================================================================

class BoQResultRecord(Base):
    """One priced, discounted resource of a calculation run. Append-only."""
    __tablename__ = "boq_results"

    id = Column(Integer, primary_key=True, index=True)
    boq_id = Column(String(36), nullable=False)
    calculation_timestamp = Column(DateTime, nullable=False)
    requested_by = Column(String(255))

    resource_id = Column(String(100), nullable=False)
    project_id = Column(String(100), nullable=False)
    instance_name = Column(String(255))
    machine_type = Column(String(100), nullable=False)
    vcpu_count = Column(Integer, nullable=False)
    memory_gb = Column(Float, nullable=False)
    disk_type = Column(String(50))
    disk_size_gb = Column(Integer)
    region = Column(String(50), nullable=False)
    pricing_model = Column(String(20), nullable=False)
    usage_duration_hours = Column(Float, nullable=False)
    usage_pattern = Column(String(20))

    compute_cost_usd = Column(Numeric(20, 10), nullable=False)
    storage_cost_usd = Column(Numeric(20, 10), nullable=False)
    gpu_cost_usd = Column(Numeric(20, 10), nullable=False, default=0)
    network_cost_usd = Column(Numeric(20, 10), nullable=False, default=0)

    compute_price_per_hour = Column(Numeric(20, 10))
    storage_price_per_gb_month = Column(Numeric(20, 10))
    gpu_price_per_hour = Column(Numeric(20, 10))
    network_price_per_hour = Column(Numeric(20, 10))
    pricing_sources = Column(JSON)

    sustained_use_discount_percent = Column(Integer, nullable=False, default=0)
    committed_use_discount_percent = Column(Integer, nullable=False, default=0)
    spot_discount_percent = Column(Integer, nullable=False, default=0)
    sustained_use_discount_usd = Column(Numeric(20, 10), nullable=False, default=0)
    committed_use_discount_usd = Column(Numeric(20, 10), nullable=False, default=0)
    spot_discount_usd = Column(Numeric(20, 10), nullable=False, default=0)

    subtotal_usd = Column(Numeric(20, 10), nullable=False)
    total_discount_usd = Column(Numeric(20, 10), nullable=False, default=0)
    total_cost_usd = Column(Numeric(20, 10), nullable=False)

    additional_storage_costs = Column(JSON)

    pricing_date = Column(Date)
    calculation_version = Column(String(20), default="1.0")

    cost_center = Column(String(100))
    environment = Column(String(50))
    team = Column(String(100))

    __table_args__ = (
        Index("idx_boq_results_boq_id", "boq_id"),
        Index("idx_boq_results_project", "project_id"),
        Index("idx_boq_results_timestamp", "calculation_timestamp"),
    )
