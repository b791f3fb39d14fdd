"""
Cloud Billing Catalog ingestion module.
Reads raw SKU price lists from the Cloud Billing Catalog REST API or from a
saved JSON export.
"""
import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import httpx
import structlog

from gcp_boq.config import settings
from gcp_boq.exceptions import PricingFeedError
from gcp_boq.models.schemas import RawPriceEntry

logger = structlog.get_logger()


class CloudBillingCatalogClient:
    """
    Client for the Cloud Billing Catalog API.

    Lists the SKUs of one service page by page. Retries are limited to the
    transport's connection retries; scheduling another attempt is left to the
    caller.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        page_size: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.billing_api_base).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.billing_api_key
        self.page_size = page_size or settings.billing_page_size

        self.client = httpx.Client(
            timeout=timeout or settings.billing_timeout_seconds,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            transport=transport or httpx.HTTPTransport(retries=3),
        )

    def list_skus(self, service_id: str) -> Iterator[Dict[str, Any]]:
        """
        Iterate over every SKU of a service.

        Args:
            service_id: Billing service id (e.g. '6F81-5844-456A' for Compute Engine)

        Yields:
            Raw SKU dictionaries as returned by the API

        Raises:
            PricingFeedError: If a page cannot be fetched or decoded
        """
        url = f"{self.base_url}/services/{service_id}/skus"
        page_token = ""
        pages = 0

        while True:
            params = {"pageSize": self.page_size}
            if self.api_key:
                params["key"] = self.api_key
            if page_token:
                params["pageToken"] = page_token

            try:
                response = self.client.get(url, params=params)
                response.raise_for_status()
                payload = response.json()
            except httpx.HTTPError as e:
                raise PricingFeedError(url, str(e)) from e
            except ValueError as e:
                raise PricingFeedError(url, f"invalid JSON: {e}") from e

            pages += 1
            skus = payload.get("skus", [])
            logger.debug("billing_catalog_page_fetched", service_id=service_id, page=pages, skus=len(skus))
            yield from skus

            page_token = payload.get("nextPageToken") or ""
            if not page_token:
                break

    def fetch_price_entries(self, service_id: str) -> List[RawPriceEntry]:
        """
        Fetch and flatten all SKUs of a service.

        Args:
            service_id: Billing service id

        Returns:
            Raw price entries
        """
        logger.info("billing_catalog_fetch_started", service_id=service_id)
        entries = [RawPriceEntry.from_billing_sku(sku) for sku in self.list_skus(service_id)]
        logger.info("billing_catalog_fetch_completed", service_id=service_id, skus=len(entries))
        return entries

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def load_price_entries_from_file(file_path: Union[str, Path]) -> List[RawPriceEntry]:
    """
    Load raw price entries from a saved API export.

    Accepts either ``{"skus": [...]}`` or a bare list of SKU objects.

    Raises:
        PricingFeedError: If the file cannot be read or parsed
    """
    path = Path(file_path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, ValueError) as e:
        raise PricingFeedError(str(path), str(e)) from e

    skus = payload.get("skus", []) if isinstance(payload, dict) else payload
    logger.info("pricing_file_loaded", path=str(path), skus=len(skus))
    return [RawPriceEntry.from_billing_sku(sku) for sku in skus]
