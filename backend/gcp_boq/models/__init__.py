"""Database models and domain schemas."""

__all__ = [
    "ResourceSpecificationRecord",
    "CatalogEntryRecord",
    "CatalogRefreshLog",
    "BoQResultRecord",
]

from gcp_boq.models.models import (
    ResourceSpecificationRecord,
    CatalogEntryRecord,
    CatalogRefreshLog,
    BoQResultRecord,
)
