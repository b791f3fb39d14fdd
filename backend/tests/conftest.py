"""
Shared fixtures: in-memory SQLite database, factories and an API client.
"""
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gcp_boq.config import EngineConfig
from gcp_boq.db.database import Base, get_sync_session
from gcp_boq.db.repositories import CatalogRepository, ResourceRepository
from gcp_boq.models import models  # noqa: F401
from gcp_boq.models.schemas import CatalogEntry


@pytest.fixture
def engine():
    """Single-connection in-memory database shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create test database session."""
    Session = sessionmaker(bind=engine, expire_on_commit=False)
    session = Session()

    yield session

    session.close()


@pytest.fixture
def config():
    return EngineConfig()


def resource_row(**overrides):
    """Resource specification row for the n1-standard-2 reference machine."""
    row = {
        "project_id": "proj-a",
        "resource_id": "vm-1",
        "instance_name": "web-1",
        "machine_type": "n1-standard-2",
        "vcpu_count": 2,
        "memory_gb": 7.5,
        "disk_type": "pd-standard",
        "disk_size_gb": 100,
        "region": "us-central1",
        "usage_duration_hours": 730,
        "usage_pattern": "continuous",
        "pricing_model": "on-demand",
        "gpu_count": 0,
        "external_ip": False,
    }
    row.update(overrides)
    return row


def catalog_entry(**overrides):
    """Normalized compute catalog entry."""
    values = {
        "sku_id": "SKU-N1-STD-2",
        "sku_name": "N1 Predefined Instance running in Americas",
        "category": "compute",
        "usage_type": "OnDemand",
        "region": "us-central1",
        "pricing_unit": "h",
        "price_per_unit": Decimal("0.095"),
        "machine_family": "n1",
        "machine_type": "n1-standard-2",
    }
    values.update(overrides)
    return CatalogEntry(**values)


def billing_sku(sku_id, description, units=0, nanos=0, regions=("us-central1",), tiers=None):
    """SKU dictionary in Cloud Billing Catalog API shape."""
    if tiers is None:
        tiers = [{"startUsageAmount": 0, "unitPrice": {"currencyCode": "USD", "units": str(units), "nanos": nanos}}]
    return {
        "skuId": sku_id,
        "description": description,
        "category": {"resourceFamily": "Compute", "resourceGroup": "CPU", "usageType": "OnDemand"},
        "serviceRegions": list(regions),
        "pricingInfo": [{
            "pricingExpression": {"usageUnit": "h", "tieredRates": tiers},
        }],
    }


@pytest.fixture
def add_resources(db_session):
    """Insert resource rows and commit."""
    def _add(*rows):
        records = ResourceRepository(db_session).add_many(rows)
        db_session.commit()
        return records
    return _add


@pytest.fixture
def add_catalog(db_session):
    """Insert catalog entries as one active generation and commit."""
    def _add(*entries, effective_date=date(2024, 1, 1)):
        CatalogRepository(db_session).upsert_generation(list(entries), effective_date)
        db_session.commit()
    return _add


@pytest.fixture
def client(db_session):
    """API client bound to the test session; lifespan (scheduler, init_db) is not run."""
    from gcp_boq.main import app

    def override_session():
        yield db_session

    app.dependency_overrides[get_sync_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()
