"""
Store interfaces over the resource, catalog and result tables.

Repositories only flush; transaction boundaries belong to the caller so that
each phase of a catalog refresh can be committed on its own.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.orm import Session

from gcp_boq.models.models import (
    BoQResultRecord,
    CatalogEntryRecord,
    ResourceSpecificationRecord,
)
from gcp_boq.models.schemas import CatalogEntry


def chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    """Yield consecutive slices of at most ``size`` items."""
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ResourceRepository:
    """Resource specification store."""

    def __init__(self, db: Session):
        self.db = db

    def find(
        self,
        project_ids: Optional[List[str]] = None,
        resource_ids: Optional[List[str]] = None,
        regions: Optional[List[str]] = None,
        pricing_models: Optional[List[str]] = None,
    ) -> List[ResourceSpecificationRecord]:
        """
        Fetch specifications matching every non-empty filter.

        Returns:
            Matching rows ordered by project and resource id
        """
        stmt = select(ResourceSpecificationRecord)

        if project_ids:
            stmt = stmt.where(ResourceSpecificationRecord.project_id.in_(project_ids))
        if resource_ids:
            stmt = stmt.where(ResourceSpecificationRecord.resource_id.in_(resource_ids))
        if regions:
            stmt = stmt.where(ResourceSpecificationRecord.region.in_(regions))
        if pricing_models:
            stmt = stmt.where(ResourceSpecificationRecord.pricing_model.in_(pricing_models))

        stmt = stmt.order_by(
            ResourceSpecificationRecord.project_id,
            ResourceSpecificationRecord.resource_id,
        )
        return list(self.db.execute(stmt).scalars().all())

    def add_many(self, specs: Iterable[Dict[str, Any]]) -> List[ResourceSpecificationRecord]:
        """Insert raw specification rows as delivered by intake."""
        records = [ResourceSpecificationRecord(**spec) for spec in specs]
        self.db.add_all(records)
        self.db.flush()
        return records


class CatalogRepository:
    """Pricing catalog store."""

    def __init__(self, db: Session):
        self.db = db

    def _find_best(self, category: str, region: str, *conditions, priority=()) -> Optional[CatalogEntryRecord]:
        stmt = (
            select(CatalogEntryRecord)
            .where(
                CatalogEntryRecord.category == category,
                CatalogEntryRecord.is_active.is_(True),
                or_(CatalogEntryRecord.region == region, CatalogEntryRecord.region.is_(None)),
                *conditions,
            )
            .order_by(
                *priority,
                case((CatalogEntryRecord.region == region, 1), else_=2),
                CatalogEntryRecord.effective_date.desc(),
                CatalogEntryRecord.id,
            )
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def find_best_compute(
        self,
        machine_type: str,
        machine_family: str,
        region: str,
        usage_type: str,
    ) -> Optional[CatalogEntryRecord]:
        """Exact machine type beats family match; exact region beats global."""
        return self._find_best(
            "compute",
            region,
            or_(
                CatalogEntryRecord.machine_type == machine_type,
                CatalogEntryRecord.machine_family == machine_family,
            ),
            CatalogEntryRecord.usage_type == usage_type,
            priority=(case((CatalogEntryRecord.machine_type == machine_type, 1), else_=2),),
        )

    def find_best_storage(self, disk_type: str, region: str) -> Optional[CatalogEntryRecord]:
        return self._find_best("storage", region, CatalogEntryRecord.disk_type == disk_type)

    def find_best_gpu(self, gpu_type: str, region: str) -> Optional[CatalogEntryRecord]:
        return self._find_best("gpu", region, CatalogEntryRecord.gpu_type == gpu_type)

    def list_entries(
        self,
        category: Optional[str] = None,
        region: Optional[str] = None,
        machine_type: Optional[str] = None,
        active_only: bool = True,
        page: int = 1,
        per_page: int = 100,
    ) -> Dict[str, Any]:
        """
        Paginated catalog listing.

        Returns:
            {"items": [...], "total": int, "page": int, "per_page": int}
        """
        conditions = []
        if active_only:
            conditions.append(CatalogEntryRecord.is_active.is_(True))
        if category:
            conditions.append(CatalogEntryRecord.category == category)
        if region:
            conditions.append(CatalogEntryRecord.region == region)
        if machine_type:
            conditions.append(CatalogEntryRecord.machine_type == machine_type)

        total = self.db.execute(
            select(func.count(CatalogEntryRecord.id)).where(*conditions)
        ).scalar()

        items = self.db.execute(
            select(CatalogEntryRecord)
            .where(*conditions)
            .order_by(CatalogEntryRecord.category, CatalogEntryRecord.sku_id)
            .offset((max(page, 1) - 1) * per_page)
            .limit(per_page)
        ).scalars().all()

        return {"items": list(items), "total": total, "page": page, "per_page": per_page}

    def latest_active_date(self) -> Optional[date]:
        """Effective date of the newest active generation, if any."""
        return self.db.execute(
            select(func.max(CatalogEntryRecord.effective_date))
            .where(CatalogEntryRecord.is_active.is_(True))
        ).scalar()

    def deactivate_before(self, effective_date: date) -> int:
        """Mark active entries from earlier generations inactive."""
        result = self.db.execute(
            update(CatalogEntryRecord)
            .where(
                CatalogEntryRecord.is_active.is_(True),
                CatalogEntryRecord.effective_date < effective_date,
            )
            .values(is_active=False, last_updated=datetime.utcnow())
        )
        return result.rowcount

    def upsert_generation(
        self,
        entries: Sequence[CatalogEntry],
        effective_date: date,
        batch_size: int = 1000,
    ) -> int:
        """
        Write a catalog generation, keyed on (sku_id, effective_date).

        Re-running with the same date updates rows in place instead of
        duplicating them.

        Returns:
            Number of entries written
        """
        written: Dict[str, CatalogEntryRecord] = {}

        for batch in chunked(entries, batch_size):
            new_skus = {entry.sku_id for entry in batch} - set(written)
            if new_skus:
                existing = self.db.execute(
                    select(CatalogEntryRecord).where(
                        CatalogEntryRecord.effective_date == effective_date,
                        CatalogEntryRecord.sku_id.in_(new_skus),
                    )
                ).scalars().all()
                written.update({record.sku_id: record for record in existing})

            for entry in batch:
                values = entry.to_record_values()
                values.update(effective_date=effective_date, is_active=True)

                record = written.get(entry.sku_id)
                if record is None:
                    record = CatalogEntryRecord(**values)
                    self.db.add(record)
                    written[entry.sku_id] = record
                else:
                    for key, value in values.items():
                        setattr(record, key, value)

            self.db.flush()

        return len(entries)

    def purge_inactive(self, cutoff: date) -> int:
        """Delete inactive entries whose generation predates ``cutoff``."""
        result = self.db.execute(
            delete(CatalogEntryRecord).where(
                CatalogEntryRecord.is_active.is_(False),
                CatalogEntryRecord.effective_date < cutoff,
            )
        )
        return result.rowcount

    def category_report(self, effective_date: date) -> List[Dict[str, Any]]:
        """Per-category counts and price statistics for one active generation."""
        rows = self.db.execute(
            select(
                CatalogEntryRecord.category,
                func.count(CatalogEntryRecord.id),
                func.avg(CatalogEntryRecord.price_per_unit),
                func.min(CatalogEntryRecord.price_per_unit),
                func.max(CatalogEntryRecord.price_per_unit),
            )
            .where(
                CatalogEntryRecord.effective_date == effective_date,
                CatalogEntryRecord.is_active.is_(True),
            )
            .group_by(CatalogEntryRecord.category)
            .order_by(CatalogEntryRecord.category)
        ).all()

        return [
            {
                "category": category,
                "record_count": count,
                "avg_price": float(avg_price),
                "min_price": float(min_price),
                "max_price": float(max_price),
            }
            for category, count, avg_price, min_price, max_price in rows
        ]


class ResultRepository:
    """BoQ results sink. Rows are only ever appended."""

    def __init__(self, db: Session):
        self.db = db

    def save_line_items(self, items: Sequence[Any], batch_size: int = 1000) -> int:
        """
        Bulk insert line items in chunks.

        Args:
            items: Objects exposing ``to_record_values()``
            batch_size: Rows per flush

        Returns:
            Number of rows written
        """
        for batch in chunked(items, batch_size):
            self.db.add_all([BoQResultRecord(**item.to_record_values()) for item in batch])
            self.db.flush()
        return len(items)

    def _conditions(
        self,
        boq_id: Optional[str],
        project_id: Optional[str],
        since: Optional[datetime],
        until: Optional[datetime],
    ) -> list:
        conditions = []
        if boq_id:
            conditions.append(BoQResultRecord.boq_id == boq_id)
        if project_id:
            conditions.append(BoQResultRecord.project_id == project_id)
        if since:
            conditions.append(BoQResultRecord.calculation_timestamp >= since)
        if until:
            conditions.append(BoQResultRecord.calculation_timestamp < until)
        return conditions

    def find(
        self,
        boq_id: Optional[str] = None,
        project_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[BoQResultRecord]:
        """Query results by run, project and/or calculation time range."""
        stmt = (
            select(BoQResultRecord)
            .where(*self._conditions(boq_id, project_id, since, until))
            .order_by(
                BoQResultRecord.calculation_timestamp.desc(),
                BoQResultRecord.project_id,
                BoQResultRecord.resource_id,
            )
            .offset(offset)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def count(
        self,
        boq_id: Optional[str] = None,
        project_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> int:
        return self.db.execute(
            select(func.count(BoQResultRecord.id))
            .where(*self._conditions(boq_id, project_id, since, until))
        ).scalar()

    def history(self, days: int = 30, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """One row per calculation run within the last ``days`` days, newest first."""
        since = (now or datetime.utcnow()) - timedelta(days=days)
        last_calculated = func.max(BoQResultRecord.calculation_timestamp)

        rows = self.db.execute(
            select(
                BoQResultRecord.boq_id,
                func.min(BoQResultRecord.requested_by),
                last_calculated,
                func.count(BoQResultRecord.id),
                func.sum(BoQResultRecord.total_cost_usd),
                func.sum(BoQResultRecord.total_discount_usd),
            )
            .where(BoQResultRecord.calculation_timestamp >= since)
            .group_by(BoQResultRecord.boq_id)
            .order_by(last_calculated.desc())
        ).all()

        return [
            {
                "boq_id": boq_id,
                "requested_by": requested_by,
                "calculation_timestamp": calculated_at.isoformat() if calculated_at else None,
                "resource_count": count,
                "total_cost_usd": round(float(total_cost or 0), 2),
                "total_discount_usd": round(float(total_discount or 0), 2),
            }
            for boq_id, requested_by, calculated_at, count, total_cost, total_discount in rows
        ]
