"""
Unit tests for catalog generation lifecycle and the refresh pipeline.
Validates deactivate / insert / purge phases and their failure policies.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from gcp_boq.config import EngineConfig
from gcp_boq.exceptions import CatalogRefreshError, PricingFeedError, StaleCatalogGenerationError
from gcp_boq.models.models import CatalogEntryRecord, CatalogRefreshLog
from gcp_boq.models.schemas import RawPriceEntry
from gcp_boq.pricing.lifecycle import CatalogLifecycleManager
from gcp_boq.pricing.refresh import CatalogRefreshPipeline

from conftest import billing_sku, catalog_entry

JAN = date(2024, 1, 1)
FEB = date(2024, 2, 1)


def generation():
    return [
        catalog_entry(sku_id="CPU-1", price_per_unit=Decimal("0.095")),
        catalog_entry(sku_id="CPU-2", machine_type="n1-standard-4", price_per_unit=Decimal("0.19")),
        catalog_entry(
            sku_id="DISK-1", category="storage", disk_type="pd-ssd",
            machine_type=None, machine_family=None, price_per_unit=Decimal("0.17"),
        ),
    ]


def count_rows(db, **filters):
    stmt = select(func.count(CatalogEntryRecord.id))
    for key, value in filters.items():
        stmt = stmt.where(getattr(CatalogEntryRecord, key) == value)
    return db.execute(stmt).scalar()


class TestRefresh:
    """Generation turnover."""

    def test_first_generation_is_active(self, db_session):
        """Test inserted entries are stamped with the date and active."""
        report = CatalogLifecycleManager(db_session).refresh(generation(), JAN)

        assert count_rows(db_session, is_active=True, effective_date=JAN) == 3
        assert report["effective_date"] == "2024-01-01"
        assert report["total_records"] == 3
        assert "update_timestamp" in report
        assert "error" not in report

    def test_report_categories(self, db_session):
        report = CatalogLifecycleManager(db_session).refresh(generation(), JAN)

        by_category = {c["category"]: c for c in report["categories"]}
        assert by_category["compute"]["record_count"] == 2
        assert by_category["compute"]["min_price"] == pytest.approx(0.095)
        assert by_category["compute"]["max_price"] == pytest.approx(0.19)
        assert by_category["compute"]["avg_price"] == pytest.approx(0.1425)
        assert by_category["storage"]["record_count"] == 1

    def test_new_generation_deactivates_previous(self, db_session):
        """Test at most one generation stays active after a refresh."""
        manager = CatalogLifecycleManager(db_session)
        manager.refresh(generation(), JAN)
        manager.refresh(generation(), FEB)

        assert count_rows(db_session, is_active=True, effective_date=FEB) == 3
        assert count_rows(db_session, is_active=False, effective_date=JAN) == 3
        assert manager.get_active_generations() == [
            {"effective_date": "2024-02-01", "active_entries": 3}
        ]

    def test_rerun_same_date_is_idempotent(self, db_session):
        """Test re-running a date updates rows instead of duplicating them."""
        manager = CatalogLifecycleManager(db_session)
        manager.refresh(generation(), JAN)

        updated = generation()
        updated[0] = catalog_entry(sku_id="CPU-1", price_per_unit=Decimal("0.1"))
        manager.refresh(updated, JAN)

        assert count_rows(db_session) == 3
        record = db_session.execute(
            select(CatalogEntryRecord).where(CatalogEntryRecord.sku_id == "CPU-1")
        ).scalar_one()
        assert Decimal(record.price_per_unit) == Decimal("0.1")

    def test_backdated_refresh_rejected(self, db_session):
        """Test a refresh older than the active generation writes nothing."""
        manager = CatalogLifecycleManager(db_session)
        manager.refresh([catalog_entry()], FEB)

        with pytest.raises(StaleCatalogGenerationError) as exc_info:
            manager.refresh([catalog_entry()], JAN)

        assert exc_info.value.active_date == FEB
        assert exc_info.value.status_code == 409
        assert count_rows(db_session, sku_id="SKU-N1-STD-2", region="us-central1", is_active=True) == 1
        assert count_rows(db_session, effective_date=JAN) == 0
        assert manager.get_active_generations() == [
            {"effective_date": "2024-02-01", "active_entries": 1}
        ]

    def test_refresh_after_only_inactive_generations(self, db_session):
        """Test an older date is accepted once nothing newer is active."""
        manager = CatalogLifecycleManager(db_session)
        manager.refresh([catalog_entry()], FEB)
        db_session.execute(update(CatalogEntryRecord).values(is_active=False))
        db_session.commit()

        manager.refresh([catalog_entry()], JAN)

        assert count_rows(db_session, is_active=True, effective_date=JAN) == 1

    def test_duplicate_sku_within_generation_written_once(self, db_session):
        entries = generation() + [catalog_entry(sku_id="CPU-1", price_per_unit=Decimal("0.2"))]

        CatalogLifecycleManager(db_session).refresh(entries, JAN)

        assert count_rows(db_session, sku_id="CPU-1") == 1

    def test_small_batches(self, db_session):
        """Test chunked inserts write every entry."""
        manager = CatalogLifecycleManager(db_session, EngineConfig(insert_batch_size=2))
        manager.refresh(generation(), JAN)

        assert count_rows(db_session) == 3


class TestPurge:
    """Retention window."""

    def test_expired_inactive_entries_purged(self, db_session):
        manager = CatalogLifecycleManager(db_session)
        old = JAN - timedelta(days=120)
        recent = JAN - timedelta(days=30)

        manager.refresh([catalog_entry(sku_id="OLD")], old)
        manager.refresh([catalog_entry(sku_id="RECENT")], recent)
        manager.refresh([catalog_entry(sku_id="NEW")], JAN)

        assert count_rows(db_session, sku_id="OLD") == 0
        assert count_rows(db_session, sku_id="RECENT", is_active=False) == 1
        assert count_rows(db_session, sku_id="NEW", is_active=True) == 1

    def test_retention_from_config(self, db_session):
        manager = CatalogLifecycleManager(db_session, EngineConfig(retention_days=10))
        manager.refresh([catalog_entry(sku_id="RECENT")], JAN - timedelta(days=30))
        manager.refresh([catalog_entry(sku_id="NEW")], JAN)

        assert count_rows(db_session, sku_id="RECENT") == 0


class TestFailurePolicy:
    """Per-phase failure handling."""

    def test_insert_failure_is_fatal(self, db_session, monkeypatch):
        manager = CatalogLifecycleManager(db_session)

        def fail(*args, **kwargs):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(manager.catalog, "upsert_generation", fail)

        with pytest.raises(CatalogRefreshError) as exc_info:
            manager.refresh(generation(), JAN)

        assert "disk full" in str(exc_info.value)
        assert exc_info.value.effective_date == JAN

    def test_deactivate_failure_does_not_abort(self, db_session, monkeypatch):
        """Test stale active entries are tolerated when deactivation fails."""
        manager = CatalogLifecycleManager(db_session)
        manager.refresh(generation(), JAN)

        def fail(*args, **kwargs):
            raise OperationalError("UPDATE", {}, Exception("locked"))

        monkeypatch.setattr(manager.catalog, "deactivate_before", fail)
        manager.refresh(generation(), FEB)

        assert count_rows(db_session, is_active=True, effective_date=FEB) == 3
        assert count_rows(db_session, is_active=True, effective_date=JAN) == 3
        assert len(manager.get_active_generations()) == 2

    def test_purge_failure_ignored(self, db_session, monkeypatch):
        manager = CatalogLifecycleManager(db_session)

        def fail(*args, **kwargs):
            raise SQLAlchemyError("timeout")

        monkeypatch.setattr(manager.catalog, "purge_inactive", fail)
        report = manager.refresh(generation(), JAN)

        assert report["total_records"] == 3

    def test_report_failure_yields_error_field(self, db_session, monkeypatch):
        manager = CatalogLifecycleManager(db_session)

        def fail(*args, **kwargs):
            raise SQLAlchemyError("report query failed")

        monkeypatch.setattr(manager.catalog, "category_report", fail)
        report = manager.refresh(generation(), JAN)

        assert report["categories"] == []
        assert "report query failed" in report["error"]
        assert report["total_records"] == 3


class FailingClient:
    def fetch_price_entries(self, service_id):
        raise PricingFeedError("https://cloudbilling.googleapis.com/v1", "503 Service Unavailable")


class StaticClient:
    def __init__(self, skus):
        self.skus = skus
        self.requested = []

    def fetch_price_entries(self, service_id):
        self.requested.append(service_id)
        return [RawPriceEntry.from_billing_sku(sku) for sku in self.skus]


class TestRefreshPipeline:
    """Feed -> normalizer -> lifecycle, with refresh log rows."""

    def test_run_with_entries(self, db_session):
        raws = [
            RawPriceEntry.from_billing_sku(
                billing_sku("A", "N1-Standard-2 Instance running in Americas", nanos=95000000)
            ),
            RawPriceEntry.from_billing_sku(billing_sku("B", "Windows Server license", nanos=46000000)),
        ]

        report = CatalogRefreshPipeline(db_session, EngineConfig()).run(raws, JAN, source="test")

        assert report["total_records"] == 1
        log = db_session.execute(select(CatalogRefreshLog)).scalar_one()
        assert log.status == "completed"
        assert log.source == "test"
        assert log.records_fetched == 2
        assert log.records_processed == 1
        assert log.completed_at is not None

    def test_fetches_from_client(self, db_session):
        client = StaticClient([billing_sku("A", "SSD backed Persistent Disk Capacity", nanos=170000000)])

        report = CatalogRefreshPipeline(
            db_session, EngineConfig(), client=client, service_id="SERVICE-1"
        ).run(effective_date=FEB)

        assert client.requested == ["SERVICE-1"]
        assert report["effective_date"] == "2024-02-01"
        assert report["categories"][0]["category"] == "storage"

    def test_feed_failure_logged_and_raised(self, db_session):
        pipeline = CatalogRefreshPipeline(db_session, EngineConfig(), client=FailingClient())

        with pytest.raises(PricingFeedError):
            pipeline.run(effective_date=JAN)

        log = db_session.execute(select(CatalogRefreshLog)).scalar_one()
        assert log.status == "failed"
        assert "503" in log.error_message
        assert count_rows(db_session) == 0

    def test_malformed_sku_marks_log_failed(self, db_session):
        """Test errors outside the engine hierarchy still close the log row."""
        client = StaticClient([{"skuId": "X", "description": "N1 Instance", "serviceRegions": "us-central1"}])
        pipeline = CatalogRefreshPipeline(db_session, EngineConfig(), client=client)

        with pytest.raises(ValidationError):
            pipeline.run(effective_date=JAN)

        log = db_session.execute(select(CatalogRefreshLog)).scalar_one()
        assert log.status == "failed"
        assert log.completed_at is not None
        assert "RawPriceEntry" in log.error_message

    def test_backdated_run_logged_as_failed(self, db_session):
        raws = [RawPriceEntry.from_billing_sku(billing_sku("A", "N1-Standard-2 Instance", nanos=95000000))]
        pipeline = CatalogRefreshPipeline(db_session, EngineConfig())
        pipeline.run(raws, FEB)

        with pytest.raises(StaleCatalogGenerationError):
            pipeline.run(raws, JAN)

        statuses = db_session.execute(
            select(CatalogRefreshLog.status).order_by(CatalogRefreshLog.id)
        ).scalars().all()
        assert statuses == ["completed", "failed"]
        assert count_rows(db_session, is_active=True) == 1
