"""
API tests using FastAPI's TestClient against the in-memory database.
"""

from datetime import date

import httpx
import pytest

from gcp_boq.api.pricing import get_billing_client
from gcp_boq.main import app
from gcp_boq.pricing.ingestion import CloudBillingCatalogClient

from conftest import billing_sku, catalog_entry, resource_row


class TestHealthEndpoint:

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestCalculateEndpoint:

    def test_calculate(self, client, add_resources):
        """Test a calculation with camelCase filters."""
        add_resources(resource_row(), resource_row(resource_id="vm-2", project_id="other"))

        response = client.post("/api/calculate", json={"projectIds": ["proj-a"], "requestedBy": "alice"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "BoQ calculation completed successfully"
        assert data["resources_processed"] == 1
        assert data["summary"]["total_resources"] == 1
        assert data["results"][0]["compute_cost_usd"] == pytest.approx(103.8425)
        assert data["results"][0]["sustained_use_discount_percent"] == 30
        assert data["results"][0]["requested_by"] == "alice"
        assert data["boq_id"]
        assert "timestamp" in data

    def test_empty_body_selects_everything(self, client, add_resources):
        add_resources(resource_row(), resource_row(resource_id="vm-2"))

        response = client.post("/api/calculate", json={})

        assert response.json()["resources_processed"] == 2

    def test_partial_failure(self, client, add_resources):
        add_resources(resource_row(resource_id="good"), resource_row(resource_id="bad", machine_type=None))

        data = client.post("/api/calculate", json={}).json()

        assert data["success"] is True
        assert data["resources_processed"] == 1

    def test_no_matching_resources(self, client):
        response = client.post("/api/calculate", json={"projectIds": ["nope"]})

        assert response.status_code == 404
        data = response.json()
        assert data["success"] is False
        assert data["message"].startswith("No resource specifications found matching the criteria")
        assert "timestamp" in data


class TestResultsEndpoints:

    @pytest.fixture
    def boq_id(self, client, add_resources):
        add_resources(
            resource_row(resource_id="vm-1"),
            resource_row(resource_id="vm-2", region="europe-west1"),
        )
        return client.post("/api/calculate", json={"requestedBy": "alice"}).json()["boq_id"]

    def test_get_boq(self, client, boq_id):
        response = client.get(f"/api/results/{boq_id}")

        assert response.status_code == 200
        data = response.json()
        assert len(data["results"]) == 2
        assert data["summary"]["total_resources"] == 2
        assert set(data["summary"]["cost_by_region"]) == {"us-central1", "europe-west1"}

    def test_get_unknown_boq(self, client):
        assert client.get("/api/results/does-not-exist").status_code == 404

    def test_list_results_by_project(self, client, boq_id):
        data = client.get("/api/results", params={"project_id": "proj-a", "limit": 1}).json()

        assert data["total"] == 2
        assert len(data["results"]) == 1
        assert data["results"][0]["boq_id"] == boq_id

    def test_history(self, client, boq_id):
        history = client.get("/api/boq-history").json()["history"]

        assert history[0]["boq_id"] == boq_id
        assert history[0]["resource_count"] == 2
        assert history[0]["requested_by"] == "alice"


class TestResourcesEndpoint:

    def test_list_with_filters(self, client, add_resources):
        add_resources(resource_row(), resource_row(resource_id="vm-2", region="europe-west1"))

        data = client.get("/api/resources", params={"region": "europe-west1"}).json()

        assert data["total"] == 1
        assert data["resources"][0]["resource_id"] == "vm-2"


class TestPricingEndpoints:

    def test_list_catalog(self, client, add_catalog):
        add_catalog(
            catalog_entry(sku_id="A"),
            catalog_entry(sku_id="B", category="storage", disk_type="pd-ssd", machine_type=None),
        )

        data = client.get("/api/pricing", params={"category": "storage"}).json()

        assert data["total"] == 1
        assert data["items"][0]["sku_id"] == "B"
        assert data["items"][0]["disk_type"] == "pd-ssd"

    def test_refresh_pricing(self, client):
        """Test a refresh driven by a mocked Cloud Billing Catalog API."""
        pages = {
            "": {
                "skus": [billing_sku("A", "N1-Standard-2 Instance running in Americas", nanos=95000000)],
                "nextPageToken": "p2",
            },
            "p2": {
                "skus": [billing_sku("B", "SSD backed Persistent Disk Capacity", nanos=170000000)],
            },
        }

        def handler(request):
            return httpx.Response(200, json=pages[request.url.params.get("pageToken", "")])

        def mock_client():
            with CloudBillingCatalogClient(
                base_url="https://billing.test/v1",
                api_key="k",
                transport=httpx.MockTransport(handler),
            ) as billing:
                yield billing

        app.dependency_overrides[get_billing_client] = mock_client

        response = client.post("/api/refresh-pricing", params={"effective_date": "2024-05-01"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["effective_date"] == "2024-05-01"
        assert data["total_records"] == 2
        assert {c["category"] for c in data["categories"]} == {"compute", "storage"}

        generations = client.get("/api/pricing/generations").json()["generations"]
        assert generations == [{"effective_date": "2024-05-01", "active_entries": 2}]

        logs = client.get("/api/pricing/refresh-logs").json()["logs"]
        assert logs[0]["status"] == "completed"

    def test_refresh_feed_failure(self, client):
        def mock_client():
            with CloudBillingCatalogClient(
                base_url="https://billing.test/v1",
                transport=httpx.MockTransport(lambda request: httpx.Response(503)),
            ) as billing:
                yield billing

        app.dependency_overrides[get_billing_client] = mock_client

        response = client.post("/api/refresh-pricing")

        assert response.status_code == 502
        assert response.json()["success"] is False

    def test_backdated_refresh_conflict(self, client, add_catalog):
        add_catalog(catalog_entry(), effective_date=date(2024, 6, 1))

        def mock_client():
            with CloudBillingCatalogClient(
                base_url="https://billing.test/v1",
                transport=httpx.MockTransport(lambda request: httpx.Response(200, json={
                    "skus": [billing_sku("A", "N1-Standard-2 Instance", nanos=95000000)],
                })),
            ) as billing:
                yield billing

        app.dependency_overrides[get_billing_client] = mock_client

        response = client.post("/api/refresh-pricing", params={"effective_date": "2024-05-01"})

        assert response.status_code == 409
        assert "2024-06-01" in response.json()["message"]
        generations = client.get("/api/pricing/generations").json()["generations"]
        assert generations == [{"effective_date": "2024-06-01", "active_entries": 1}]
